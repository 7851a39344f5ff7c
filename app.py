# app.py
"""
repeatmap HTTP service (FastAPI)

Scores are posted as structure JSON (systems / barlines / alternate endings);
every request builds its own RepeatIndex, nothing is stored server-side.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import Settings, get_settings
from core.playback import PlaybackLimitExceeded
from routers.health import router as health_router
from routers.repeats import router as repeats_router

logger = logging.getLogger("repeatmap")

# localhost on any port
DEV_ORIGIN_REGEX = r"http://(?:localhost|127\.0\.0\.1)(?::\d+)?"


@asynccontextmanager
async def lifespan(app: FastAPI):
    s: Settings = app.state.settings
    logger.info(
        "repeatmap up: env=%s max_playback_steps=%s default_repeat_count=%s",
        s.app_env,
        s.max_playback_steps,
        s.default_repeat_count,
    )
    yield
    logger.info("repeatmap stopped")


async def _playback_limit_handler(request: Request, exc: PlaybackLimitExceeded) -> JSONResponse:
    logger.warning("playback walk aborted on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=422,
        content={
            "detail": str(exc),
            "max_steps": exc.max_steps,
            "location": {"system": exc.location.system, "position": exc.location.position},
        },
    )


def _add_cors(app: FastAPI, s: Settings) -> None:
    if s.is_dev:
        app.add_middleware(
            CORSMiddleware,
            allow_origin_regex=DEV_ORIGIN_REGEX,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
        return

    origins = s.cors_origins
    # no explicit origins => credentials off
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=bool(origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )


def create_app() -> FastAPI:
    s = get_settings()

    # only configure logging once (reload / tests create several apps)
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=getattr(logging, s.log_level, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

    app = FastAPI(
        title="repeatmap",
        version="0.1.0",
        description="Repeat structure index and playback navigation for scores",
        lifespan=lifespan,
    )
    app.state.settings = s

    _add_cors(app, s)
    app.add_exception_handler(PlaybackLimitExceeded, _playback_limit_handler)

    app.include_router(health_router)
    app.include_router(repeats_router)

    @app.get("/", include_in_schema=False)
    def root():
        return {"service": "repeatmap", "docs_url": "/docs", "api": "/api/v1/repeats"}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    _s = get_settings()
    uvicorn.run("app:app", host=_s.host, port=_s.port, reload=_s.is_dev)
