"""FastAPI entrypoint for the task tree blob store."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tasktree import state_api  # noqa: F401  (registers routes)
from tasktree.blob_store import FileBlobStore
from tasktree.config import StoreConfig, load_config
from tasktree.errors import ErrorResponse, TaskTreeError, error_response
from tasktree.router import store_router
from tasktree.user_scope import (
    AUTH_EXEMPT_PATHS,
    SERVICE_TOKEN_HEADER,
    USER_ID_HEADER,
    normalize_user_id,
)

_STATUS_BY_CODE = {
    "NOT_FOUND": 404,
    "AUTH_REQUIRED": 401,
    "AUTH_LOST": 401,
    "AUTH_FORBIDDEN": 403,
}


def _apply_config(app: FastAPI, config: StoreConfig) -> None:
    app.state.config = config
    app.state.store_path = config.store_path
    app.state.blob_store = FileBlobStore(config.store_path)


def create_app(config: StoreConfig | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "config", None) is None:
            _apply_config(app, load_config())
        yield

    app = FastAPI(lifespan=lifespan)
    if config is not None:
        _apply_config(app, config)

    @app.middleware("http")
    async def enforce_request_identity(request: Request, call_next):
        path = request.url.path
        if path in AUTH_EXEMPT_PATHS:
            return await call_next(request)

        config = getattr(request.app.state, "config", None)
        require_user_header = bool(getattr(config, "require_user_header", True))
        service_token = getattr(config, "service_token", None)

        if require_user_header:
            raw_user_id = request.headers.get(USER_ID_HEADER)
            if raw_user_id is None:
                error = ErrorResponse(
                    code="AUTH_REQUIRED",
                    message="Missing required user identity header.",
                    details={"header": USER_ID_HEADER},
                )
                return JSONResponse(status_code=401, content=error_response(error))
            try:
                request.state.user_id = normalize_user_id(raw_user_id)
            except TaskTreeError as exc:
                return JSONResponse(status_code=401, content=error_response(exc.error))

        if service_token:
            supplied_token = request.headers.get(SERVICE_TOKEN_HEADER)
            if supplied_token != service_token:
                error = ErrorResponse(
                    code="AUTH_FORBIDDEN",
                    message="Invalid service token.",
                    details={"header": SERVICE_TOKEN_HEADER},
                )
                return JSONResponse(status_code=403, content=error_response(error))

        return await call_next(request)

    @app.exception_handler(TaskTreeError)
    def handle_tasktree_error(request: Request, exc: TaskTreeError) -> JSONResponse:
        status_code = _STATUS_BY_CODE.get(exc.code, 400)
        return JSONResponse(status_code=status_code, content=error_response(exc.error))

    @app.get("/health", status_code=200)
    def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(store_router)
    return app


app = create_app()
