from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, File, Query, Request, UploadFile

from mictla.core.config import is_export_import_enabled
from mictla.core.http import err_envelope, get_store, rid
from mictla.modules.exports_imports.schemas import ImportOut, MediaValidationOut, SyncStatsOut
from mictla.modules.store.service import EntityStore
from mictla.modules.validation.service import validate_audio_file, validate_image_file

router = APIRouter()


def _disabled(request: Request):
    return err_envelope("export_import_disabled", "EXPORT_IMPORT_ENABLED=0", rid(request), {}, 503)


# ---------- Exports / Imports ----------

@router.get("/exports", tags=["exports"])
def api_export(request: Request, store: EntityStore = Depends(get_store)):
    if not is_export_import_enabled():
        return _disabled(request)
    return store.export_data()


@router.post("/imports", response_model=ImportOut, tags=["imports"])
def api_import(request: Request, body: Any = Body(...), store: EntityStore = Depends(get_store)):
    if not is_export_import_enabled():
        return _disabled(request)
    return ImportOut(counts=store.import_data(body))


# ---------- Stats ----------

@router.get("/stats", tags=["stats"])
def api_stats(store: EntityStore = Depends(get_store)) -> Dict[str, Any]:
    return store.get_stats()


@router.get("/stats/sync", response_model=SyncStatsOut, tags=["stats"])
def api_sync_stats(store: EntityStore = Depends(get_store)) -> SyncStatsOut:
    return SyncStatsOut(**store.get_sync_stats())


# ---------- Media ----------

@router.post("/media/validate", response_model=MediaValidationOut, tags=["media"])
def api_validate_media(
    kind: str = Query(..., pattern="^(image|audio)$"),
    file: UploadFile = File(...),
) -> MediaValidationOut:
    v = validate_image_file(file) if kind == "image" else validate_audio_file(file)
    return MediaValidationOut(kind=kind, filename=file.filename, is_valid=v.is_valid, errors=v.errors)
