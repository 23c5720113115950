from __future__ import annotations

from typing import Any, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from mictla.modules.store.service import EntityStore


def rid(request: Request) -> Optional[str]:
    return (
        getattr(getattr(request, "state", None), "request_id", None)
        or request.headers.get("X-Request-Id")
    )


def err_envelope(error: str, message: str, request_id: Optional[str], details: Any, status_code: int) -> JSONResponse:
    headers = {}
    if request_id:
        headers["X-Request-Id"] = request_id
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "request_id": request_id,
            "details": details,
        },
        headers=headers,
    )


def get_store(request: Request) -> EntityStore:
    """FastAPI dependency: the one store attached to the app at construction."""
    return request.app.state.store
