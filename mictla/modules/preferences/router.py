from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Path

from mictla.core.http import get_store
from mictla.modules.preferences.schemas import UserPreferences
from mictla.modules.store.service import EntityStore

router = APIRouter(tags=["preferences"])


@router.get("/preferences/{user_id}", response_model=UserPreferences)
def api_get_preferences(user_id: str = Path(...), store: EntityStore = Depends(get_store)) -> UserPreferences:
    p = store.get_user_preferences(user_id)
    if p is None:
        raise HTTPException(status_code=404, detail=f"preferences not found: {user_id}")
    return p


@router.put("/preferences/{user_id}", response_model=UserPreferences)
def api_put_preferences(
    user_id: str = Path(...),
    body: Dict[str, Any] = Body(...),
    store: EntityStore = Depends(get_store),
) -> UserPreferences:
    return store.save_user_preferences(user_id, body)
