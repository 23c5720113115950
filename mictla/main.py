from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from mictla.core.config import get_app_version
from mictla.core.db import db_health
from mictla.core.errors import ImportFormatError, MembershipError, StoreError, ValidationFailed
from mictla.core.http import err_envelope
from mictla.core.observability import emit, now_iso
from mictla.core.storage import storage_health
from mictla.modules.exports_imports.router import router as exports_imports_router
from mictla.modules.family_groups.router import router as family_groups_router
from mictla.modules.memorials.router import router as memorials_router
from mictla.modules.offerings.router import router as offerings_router
from mictla.modules.preferences.router import router as preferences_router
from mictla.modules.store.service import EntityStore

# Contract:
# - /health keys: status, version, db, storage, last_error_summary
# - X-Request-Id in/out (missing -> generated; always echoed back; also on errors)
# - Error envelope keys: error, message, request_id, details


def _remember_error(request: Request, error: str, message: str) -> None:
    request.app.state.last_error = {"ts": now_iso(), "error": error, "message": message}


def create_app(store: Optional[EntityStore] = None) -> FastAPI:
    owns_store = store is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owns_store:
            app.state.store.close()

    app = FastAPI(title="Mictla Data API", version=get_app_version(), lifespan=lifespan)
    app.state.store = store or EntityStore()
    app.state.last_error = None

    @app.middleware("http")
    async def _request_id_mw(request: Request, call_next):
        rid = request.headers.get("X-Request-Id") or uuid.uuid4().hex.upper()
        request.state.request_id = rid
        emit("info", "http.request.start", f"{request.method} {request.url.path}", module=__name__, request_id=rid)
        try:
            resp = await call_next(request)
        except Exception as e:
            emit("error", "http.request.exception", str(e), module=__name__, request_id=rid)
            raise
        resp.headers["X-Request-Id"] = rid
        emit(
            "info",
            "http.request.end",
            f"{request.method} {request.url.path} -> {getattr(resp, 'status_code', None)}",
            module=__name__,
            request_id=rid,
        )
        return resp

    @app.exception_handler(StarletteHTTPException)
    async def _http_exc_handler(request: Request, exc: StarletteHTTPException):
        rid = getattr(request.state, "request_id", None)
        code = "not_found" if exc.status_code == 404 else "http_error"
        return err_envelope(code, str(exc.detail), rid, {"status_code": exc.status_code}, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_handler(request: Request, exc: RequestValidationError):
        rid = getattr(request.state, "request_id", None)
        return err_envelope("validation_error", "request validation failed", rid, jsonable_encoder(exc.errors()), 422)

    @app.exception_handler(ValidationFailed)
    async def _validation_failed_handler(request: Request, exc: ValidationFailed):
        rid = getattr(request.state, "request_id", None)
        return err_envelope("validation_error", str(exc), rid, {"entity": exc.entity, "errors": exc.errors}, 422)

    @app.exception_handler(ImportFormatError)
    async def _import_format_handler(request: Request, exc: ImportFormatError):
        rid = getattr(request.state, "request_id", None)
        return err_envelope("import_format_error", str(exc), rid, {}, 400)

    @app.exception_handler(MembershipError)
    async def _membership_handler(request: Request, exc: MembershipError):
        rid = getattr(request.state, "request_id", None)
        return err_envelope("membership_error", str(exc), rid, {}, 409)

    @app.exception_handler(StoreError)
    async def _store_error_handler(request: Request, exc: StoreError):
        rid = getattr(request.state, "request_id", None)
        _remember_error(request, "store_error", str(exc))
        emit("error", "http.store_error", str(exc), module=__name__, request_id=rid, type=type(exc).__name__)
        return err_envelope("store_error", str(exc), rid, {"type": type(exc).__name__}, 500)

    @app.exception_handler(Exception)
    async def _unhandled_exc_handler(request: Request, exc: Exception):
        rid = getattr(request.state, "request_id", None)
        _remember_error(request, "internal_error", type(exc).__name__)
        return err_envelope("internal_error", "internal server error", rid, {"type": type(exc).__name__}, 500)

    @app.get("/health")
    def health(request: Request) -> Dict[str, Any]:
        db = db_health(request.app.state.store.database_url)
        storage = storage_health()
        ok = db.get("status") == "ok" and storage.get("status") == "ok"
        return {
            "status": "ok" if ok else "degraded",
            "version": get_app_version(),
            "db": db,
            "storage": storage,
            "last_error_summary": request.app.state.last_error,
        }

    app.include_router(memorials_router)
    app.include_router(family_groups_router)
    app.include_router(offerings_router)
    app.include_router(preferences_router)
    app.include_router(exports_imports_router)
    return app


app = create_app()
