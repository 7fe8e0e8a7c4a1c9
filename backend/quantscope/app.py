from __future__ import annotations

import logging
import logging.handlers
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, TextIO

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import router as api_router
from .config import AppConfig, LoggingConfig
from .settings import SettingsError
from .sources import SourceDecodeError
from .state import AppState

_FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_CONSOLE_FORMAT = "[%(levelname)s] %(name)s: %(message)s"


class SafeStreamHandler(logging.StreamHandler[TextIO]):
    def emit(self, record: logging.LogRecord) -> None:
        try:
            super().emit(record)
        except ValueError:
            pass


def _resolve_log_file(file: str) -> Path:
    path = Path(file)
    if not path.is_absolute():
        # Relative paths are relative to backend/
        path = Path(__file__).parent.parent / path
    return path


def setup_logging(cfg: LoggingConfig) -> None:
    """Configure console logging and, if configured, a rotating log file.

    The file rotates at 5MB and keeps 3 backups. Calling this again replaces
    the handlers installed by a previous call.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if getattr(handler, "_quantscope", False):
            root_logger.removeHandler(handler)
            handler.close()

    level = cfg.level_number
    root_logger.setLevel(level)

    console_handler = SafeStreamHandler()
    console_handler.setLevel(cfg.console_level_number)
    console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    console_handler._quantscope = True  # type: ignore[attr-defined]
    root_logger.addHandler(console_handler)

    if cfg.file:
        log_file = _resolve_log_file(cfg.file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=5 * 1024 * 1024,  # 5MB
            backupCount=3,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        file_handler._quantscope = True  # type: ignore[attr-defined]
        root_logger.addHandler(file_handler)
        logging.info("File logging initialized: %s", log_file)


def create_app(config: AppConfig, config_path: str | None = None) -> FastAPI:
    setup_logging(config.logging)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app_state: AppState = app.state.app_state
        logging.info(
            f"QuantScope ready: hardware rate {app_state.host.hardware_rate} Hz, "
            f"block size {app_state.host.block_size}"
        )
        try:
            yield
        finally:
            app_state.close()

    app = FastAPI(title="QuantScope", version=__version__, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Allow all origins for local development
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(SettingsError)
    async def settings_error_handler(request: Request, exc: SettingsError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": exc.problems})

    @app.exception_handler(SourceDecodeError)
    async def decode_error_handler(request: Request, exc: SourceDecodeError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    app.state.app_state = AppState.from_config(config, config_path)

    app.include_router(api_router, prefix="/api/v1")

    @app.get("/")
    def root() -> dict[str, str]:
        return {"message": "QuantScope API", "docs": "/docs"}

    return app
