"""FastAPI application streaming conversions as newline-delimited JSON."""

from __future__ import annotations

from collections.abc import Callable
from functools import partial

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from repo_to_text import __version__
from repo_to_text.acquisition import AcquisitionStrategy, strategy_for_reference
from repo_to_text.channel import encode_events, guard_events
from repo_to_text.exceptions import InvalidReferenceError
from repo_to_text.logging import logger
from repo_to_text.pipeline import convert
from repo_to_text.reference import RepositoryReference, parse_repository_reference
from repo_to_text.settings import Settings

NDJSON_MEDIA_TYPE = "application/x-ndjson"

StrategyFactory = Callable[[RepositoryReference], AcquisitionStrategy]


class AnalyzeRequest(BaseModel):
    url: str


class HealthResponse(BaseModel):
    status: str


def create_app(
    settings: Settings | None = None,
    strategy_factory: StrategyFactory | None = None,
) -> FastAPI:
    """Create the FastAPI application exposing the conversion endpoint.

    Args:
        settings: service configuration; read from the environment when omitted.
        strategy_factory: builds the acquisition strategy of each request. Defaults
            to the strategy selected by `settings.strategy`.

    Returns:
        The configured application.
    """
    settings = settings or Settings.from_env()
    factory = strategy_factory or partial(strategy_for_reference, settings=settings)

    app = FastAPI(title="Repository to Text", version=__version__)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/api/analyze", response_model=None)
    async def analyze(payload: AnalyzeRequest) -> StreamingResponse | JSONResponse:
        logger.info("analyze_request_received", url=payload.url)
        try:
            reference = parse_repository_reference(payload.url)
        except InvalidReferenceError as e:
            logger.warning("invalid_reference", url=payload.url, error=str(e))
            return JSONResponse(status_code=400, content={"error": str(e)})

        # One strategy per request: no state is shared between conversions.
        strategy = factory(reference)
        events = guard_events(convert(strategy))
        return StreamingResponse(encode_events(events), media_type=NDJSON_MEDIA_TYPE)

    return app


def run_service(settings: Settings) -> None:  # pragma: no cover - integration path
    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
