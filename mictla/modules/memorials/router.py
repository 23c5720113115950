from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query

from mictla.core.http import get_store
from mictla.modules.memorials.schemas import Memorial, MemorialsListOut
from mictla.modules.offerings.schemas import OfferingsListOut
from mictla.modules.store.service import EntityStore

router = APIRouter(tags=["memorials"])


def _not_found(memorial_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"memorial not found: {memorial_id}")


@router.get("/memorials", response_model=MemorialsListOut)
def api_list_memorials(
    altar_level: Optional[int] = Query(None, ge=1, le=3),
    sync_status: Optional[str] = Query(None, description="local|pending|synced"),
    store: EntityStore = Depends(get_store),
) -> MemorialsListOut:
    if altar_level is not None:
        items = store.get_memorials_by_level(altar_level)
        if sync_status is not None:
            items = [m for m in items if m.sync_status == sync_status]
    elif sync_status is not None:
        items = store.get_memorials_by_sync_status(sync_status)
    else:
        items = store.get_memorials()
    return MemorialsListOut(items=items, total=len(items))


@router.post("/memorials", response_model=Memorial, status_code=201)
def api_create_memorial(body: Dict[str, Any] = Body(...), store: EntityStore = Depends(get_store)) -> Memorial:
    # raw body: the validation gate owns the error messages
    return store.save_memorial({**body, "syncStatus": "local"})


@router.get("/memorials/{memorial_id}", response_model=Memorial)
def api_get_memorial(memorial_id: str = Path(...), store: EntityStore = Depends(get_store)) -> Memorial:
    m = store.get_memorial(memorial_id)
    if m is None:
        raise _not_found(memorial_id)
    return m


@router.patch("/memorials/{memorial_id}", response_model=Memorial)
def api_patch_memorial(
    memorial_id: str = Path(...),
    body: Dict[str, Any] = Body(...),
    store: EntityStore = Depends(get_store),
) -> Memorial:
    m = store.update_memorial(memorial_id, body)
    if m is None:
        raise _not_found(memorial_id)
    return m


@router.delete("/memorials/{memorial_id}")
def api_delete_memorial(memorial_id: str = Path(...), store: EntityStore = Depends(get_store)) -> Dict[str, Any]:
    if not store.delete_memorial(memorial_id):
        raise _not_found(memorial_id)
    return {"deleted": True, "id": memorial_id}


@router.get("/memorials/{memorial_id}/offerings", response_model=OfferingsListOut)
def api_memorial_offerings(memorial_id: str = Path(...), store: EntityStore = Depends(get_store)) -> OfferingsListOut:
    if store.get_memorial(memorial_id) is None:
        raise _not_found(memorial_id)
    items = store.get_offerings_by_memorial(memorial_id)
    return OfferingsListOut(items=items, total=len(items))
