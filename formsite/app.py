"""
FastAPI application entry point for the site backend.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.datastructures import Headers
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from formsite.config import Settings, get_settings
from formsite.db import DbClient
from formsite.dependencies import build_upload_store, select_db_client
from formsite.errors import StorageError, ValidationError
from formsite.routes import router
from formsite.uploads import LocalUploadStore

logger = logging.getLogger(__name__)


class BodySizeLimitMiddleware:
    """
    Reject request bodies larger than ``max_body_bytes``.

    A declared ``Content-Length`` over the cap is refused up front; other
    bodies (e.g. chunked uploads) are counted as they are read.
    """

    def __init__(self, app: ASGIApp, max_body_bytes: int):
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        length = Headers(scope=scope).get("content-length")
        if length and length.isdigit() and int(length) > self.max_body_bytes:
            await _too_large()(scope, receive, send)
            return

        received = 0
        response_started = False

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body_bytes:
                    raise HTTPException(status_code=413, detail="Payload too large")
            return message

        async def tracking_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, limited_receive, tracking_send)
        except HTTPException as exc:
            if exc.status_code != 413 or response_started:
                raise
            await _too_large()(scope, receive, send)


def _too_large() -> JSONResponse:
    return JSONResponse(status_code=413, content={"error": "Payload too large"})


def create_app(
    settings: Optional[Settings] = None,
    db_client: Optional[DbClient] = None,
    upload_store: Optional[LocalUploadStore] = None,
) -> FastAPI:
    """
    Build the application.

    The storage backend is chosen once at startup unless ``db_client`` is
    given, and is kept on ``app.state`` until shutdown.
    """
    settings = settings or get_settings()
    upload_store = upload_store or build_upload_store(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        upload_store.ensure_directory()
        if db_client is not None:
            app.state.db_client = db_client
        else:
            try:
                app.state.db_client = select_db_client(settings)
            except (StorageError, ValueError) as exc:
                logger.error("Failed to initialize storage: %s", exc)
                raise RuntimeError(f"Storage initialization failed: {exc}") from exc
        logger.info("Storage backend: %s", app.state.db_client.backend_name)
        yield

    app = FastAPI(title="Formsite Backend", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.upload_store = upload_store

    app.add_middleware(BodySizeLimitMiddleware, max_body_bytes=settings.max_body_bytes)

    # Any origin may call the API.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"error": exc.reason})

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(
        request: Request, exc: RequestValidationError
    ):
        return JSONResponse(status_code=400, content={"error": "Invalid payload"})

    @app.exception_handler(StorageError)
    async def handle_storage_error(request: Request, exc: StorageError):
        logger.error(
            "Storage error on %s %s", request.method, request.url.path, exc_info=exc
        )
        return JSONResponse(status_code=500, content={"error": "DB error"})

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    app.include_router(router, prefix=settings.api_prefix)
    app.mount(
        upload_store.url_prefix,
        StaticFiles(directory=upload_store.directory, check_dir=False),
        name="uploads",
    )
    return app


app = create_app()


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(), format="%(levelname)s:%(name)s:%(message)s"
    )
    logger.info("API running on http://localhost:%d", settings.port)
    uvicorn.run("formsite.app:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
