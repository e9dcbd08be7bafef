from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from channel_ideas.core.config import settings
from channel_ideas.core.logging_setup import configure_logging
from channel_ideas.core.middleware import RequestIDMiddleware

configure_logging(settings.LOG_LEVEL)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("app.startup", environment=settings.ENVIRONMENT)

    if not settings.YOUTUBE_API_KEY:
        logger.warning(
            "app.startup.youtube_key_missing",
            hint="Set YOUTUBE_API_KEY; every analysis will end with an error frame",
        )
    if not settings.OPENAI_API_KEY:
        logger.warning(
            "app.startup.openai_key_missing",
            hint="Set OPENAI_API_KEY; topics and ideas will use keyword/template fallbacks",
        )
    if not settings.NEWS_API_KEY:
        logger.warning("app.startup.news_key_missing", hint="News results will be empty")

    yield

    logger.info("app.shutdown")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Channel Ideas API",
        description="Streams YouTube channel analysis and video ideas over SSE",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
        max_age=3600,
    )

    app.add_middleware(RequestIDMiddleware)

    from channel_ideas.api.v1 import analyze

    app.include_router(analyze.router, prefix="/api/v1/analyze", tags=["analyze"])

    @app.get("/health")
    async def health_check():
        """Liveness check. The service holds no connections, so this is always ok."""
        return {"status": "ok"}

    @app.get("/metrics")
    async def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("channel_ideas.main:app", host="0.0.0.0", port=8000)
