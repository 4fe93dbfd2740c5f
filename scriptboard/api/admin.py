"""
Admin API: matching configuration, tag management and manual recomputes
"""
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session
from typing import List, Optional

from scriptboard.models.base import get_db
from scriptboard.models.system_config import CONTENT_TYPES_KEY
from scriptboard.services.script_service import (
    ScriptService,
    TagInUseError,
    TagNameConflictError,
    TagNotFoundError,
    tag_to_dict,
)
from scriptboard.services.stats_processor import run_stats_recompute
from scriptboard.services.system_config_service import (
    get_all_list_configs,
    get_list_config,
    scan_content_types,
    set_list_config,
)
from scriptboard.utils.logger import log

router = APIRouter(prefix="/admin", tags=["admin"])


class ListConfigUpdate(BaseModel):
    key: str
    values: List[str]


class TagCreate(BaseModel):
    name: str
    type: str


class TagUpdate(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None


def _raise_for_tag(e: Exception):
    if isinstance(e, TagNotFoundError):
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, TagNameConflictError):
        raise HTTPException(status_code=409, detail=str(e))
    if isinstance(e, (TagInUseError, ValueError)):
        raise HTTPException(status_code=400, detail=str(e))
    raise e


@router.get("/system-config")
def get_system_config(db: Session = Depends(get_db)):
    """blockWords, contentTypes and disabledContentTypes."""
    return {"success": True, "data": get_all_list_configs(db)}


@router.put("/system-config")
def update_system_config(
    payload: ListConfigUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """Replace one list. Matching changes take effect on the next recompute, queued here."""
    try:
        set_list_config(db, payload.key, payload.values)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    log.info(f"System config {payload.key} updated ({len(payload.values)} values)")
    background_tasks.add_task(run_stats_recompute)
    return {"success": True, "data": {payload.key: get_list_config(db, payload.key)}}


@router.post("/recalculate-stats")
def recalculate_stats(background_tasks: BackgroundTasks):
    """Queue a full statistics recompute."""
    background_tasks.add_task(run_stats_recompute)
    return {"success": True, "message": "Stats recompute started in background"}


@router.post("/recalculate-channel-stats")
def recalculate_channel_stats(background_tasks: BackgroundTasks):
    """Queue a channel-period-only recompute."""
    background_tasks.add_task(run_stats_recompute, channel_only=True)
    return {"success": True, "message": "Channel stats recompute started in background"}


@router.post("/scan-content-types")
def scan_content_type_suffixes(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """Register the two-character suffix of every script name as a content type."""
    added = scan_content_types(db)
    if added:
        background_tasks.add_task(run_stats_recompute)
    return {"success": True, "data": {"added": added, "content_types": get_list_config(db, CONTENT_TYPES_KEY)}}


# ── Tags ────────────────────────────────────────────────────────────
# Tag edits never change matching, so no recompute is queued.

@router.get("/tags")
def list_tags_by_type(db: Session = Depends(get_db)):
    """Tags grouped by segment type, with how many scripts use each."""
    return {"success": True, "data": ScriptService(db).tags_by_type()}


@router.post("/tags")
def create_tag(payload: TagCreate, db: Session = Depends(get_db)):
    try:
        tag = ScriptService(db).create_tag(payload.name, payload.type)
    except (TagNameConflictError, ValueError) as e:
        _raise_for_tag(e)
    return {"success": True, "data": tag_to_dict(tag)}


@router.put("/tags/{tag_id}")
def update_tag(tag_id: int, payload: TagUpdate, db: Session = Depends(get_db)):
    try:
        tag = ScriptService(db).update_tag(tag_id, name=payload.name, tag_type=payload.type)
    except (TagNotFoundError, TagNameConflictError, ValueError) as e:
        _raise_for_tag(e)
    return {"success": True, "data": tag_to_dict(tag)}


@router.delete("/tags/{tag_id}")
def delete_tag(tag_id: int, db: Session = Depends(get_db)):
    """Delete a tag no script uses."""
    try:
        ScriptService(db).delete_tag(tag_id)
    except (TagNotFoundError, TagInUseError) as e:
        _raise_for_tag(e)
    return {"success": True, "message": "Tag deleted"}
