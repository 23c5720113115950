from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query

from mictla.core.http import get_store
from mictla.modules.offerings.schemas import OfferingsListOut, VirtualOffering
from mictla.modules.store.service import EntityStore

router = APIRouter(tags=["offerings"])


def _not_found(offering_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"offering not found: {offering_id}")


@router.get("/offerings", response_model=OfferingsListOut)
def api_list_offerings(
    type: Optional[str] = Query(None, description="offering type tag"),
    memorial_id: Optional[str] = Query(None),
    store: EntityStore = Depends(get_store),
) -> OfferingsListOut:
    if type is not None:
        items = store.get_offerings_by_type(type)
        if memorial_id is not None:
            items = [o for o in items if o.memorial_id == memorial_id]
    elif memorial_id is not None:
        items = store.get_offerings_by_memorial(memorial_id)
    else:
        items = store.get_virtual_offerings()
    return OfferingsListOut(items=items, total=len(items))


@router.post("/offerings", response_model=VirtualOffering, status_code=201)
def api_create_offering(body: Dict[str, Any] = Body(...), store: EntityStore = Depends(get_store)) -> VirtualOffering:
    return store.save_virtual_offering(body)


@router.get("/offerings/{offering_id}", response_model=VirtualOffering)
def api_get_offering(offering_id: str = Path(...), store: EntityStore = Depends(get_store)) -> VirtualOffering:
    o = store.get_virtual_offering(offering_id)
    if o is None:
        raise _not_found(offering_id)
    return o


@router.delete("/offerings/{offering_id}")
def api_delete_offering(offering_id: str = Path(...), store: EntityStore = Depends(get_store)) -> Dict[str, Any]:
    if not store.delete_virtual_offering(offering_id):
        raise _not_found(offering_id)
    return {"deleted": True, "id": offering_id}
