"""HTTP surface for PRISM.

    POST /api/ask   {"question": "...", "visualMode": false, "model": "flash"}
                    -> application/x-ndjson stream of stage events
    GET  /health

Session/cookie checks happen upstream; the app only consults an optional
``authorize(request) -> bool`` predicate before starting the pipeline.

Usage:
    uvicorn prism.api:app --port 8000
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Literal

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from prism import __version__
from prism.config import settings
from prism.pipeline.orchestrator import AskPipeline, open_pipeline

logger = logging.getLogger(__name__)

NDJSON_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

Authorizer = Callable[[Request], bool]


class AskRequest(BaseModel):
    """Request body for the ask endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    question: str | None = Field(default=None, description="Free-text question")
    visual_mode: bool | None = Field(default=None, alias="visualMode", description="Also request a chart spec")
    model: Literal["flash", "pro"] | None = Field(default=None, description="Backend model variant")


class HealthResponse(BaseModel):
    status: str
    version: str


def create_app(
    pipeline: AskPipeline | None = None,
    authorize: Authorizer | None = None,
) -> FastAPI:
    """Build the FastAPI app.

    Args:
        pipeline: Pre-built pipeline (tests); when None one is opened from
            settings for the lifetime of the app
        authorize: Optional request predicate; False -> 401
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if pipeline is not None:
            app.state.pipeline = pipeline
            yield
            return
        async with open_pipeline() as live:
            app.state.pipeline = live
            logger.info("PRISM pipeline ready")
            yield

    app = FastAPI(title="PRISM", version=__version__, lifespan=lifespan)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", version=__version__)

    @app.post("/api/ask")
    async def ask(body: AskRequest, request: Request):
        if authorize is not None and not authorize(request):
            logger.info("Rejected unauthorized ask request from %s", request.client)
            return JSONResponse({"error": "Unauthorized"}, status_code=401)

        visual_mode = settings.visual_mode_default if body.visual_mode is None else body.visual_mode
        active: AskPipeline = request.app.state.pipeline

        async def event_stream() -> AsyncIterator[str]:
            async for event in active.run(
                body.question,
                visual_mode=visual_mode,
                model=body.model,
                is_disconnected=request.is_disconnected,
            ):
                yield event.to_line()

        return StreamingResponse(
            event_stream(),
            media_type="application/x-ndjson",
            headers=NDJSON_HEADERS,
        )

    return app


def cookie_authorizer(cookie_name: str = "auth_token") -> Authorizer:
    """Predicate admitting requests that carry the session cookie."""

    def authorize(request: Request) -> bool:
        return bool(request.cookies.get(cookie_name))

    return authorize


app = create_app(
    authorize=cookie_authorizer(settings.auth_cookie_name) if settings.auth_cookie_name else None,
)
