"""
Script library API

CRUD, bulk text import and per-script channel statistics. Every mutation
schedules a background statistics recompute.
"""
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session
from typing import List, Optional

from scriptboard.models.base import get_db
from scriptboard.services.script_parser import ParsedScript, parse_script_text
from scriptboard.services.script_service import (
    ScriptService,
    ScriptNameConflictError,
    ScriptNotFoundError,
    ScriptLineageError,
    script_to_dict,
)
from scriptboard.services.stats_processor import run_stats_recompute
from scriptboard.services.stats_query_service import StatsQueryService
from scriptboard.utils.logger import log

router = APIRouter(prefix="/scripts", tags=["scripts"])


class ScriptCreate(BaseModel):
    name: str
    parent_id: Optional[int] = None
    front_content: Optional[str] = None
    mid_content: Optional[str] = None
    end_content: Optional[str] = None
    tag_ids: List[int] = []


class ScriptUpdate(BaseModel):
    name: Optional[str] = None
    parent_id: Optional[int] = None
    front_content: Optional[str] = None
    mid_content: Optional[str] = None
    end_content: Optional[str] = None
    tag_ids: Optional[List[int]] = None


class BatchDeleteRequest(BaseModel):
    ids: List[int]


class ImportParseRequest(BaseModel):
    text: str


class ImportedScript(BaseModel):
    name: str
    front_content: str = ""
    mid_content: str = ""
    end_content: str = ""
    front_tag_names: List[str] = []
    mid_tag_names: List[str] = []
    end_tag_names: List[str] = []


class ImportSaveRequest(BaseModel):
    scripts: List[ImportedScript]


def _raise_for(e: Exception):
    """Translate script service errors into HTTP errors."""
    if isinstance(e, ScriptNotFoundError):
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ScriptNameConflictError):
        raise HTTPException(status_code=409, detail=str(e))
    if isinstance(e, (ScriptLineageError, ValueError)):
        raise HTTPException(status_code=400, detail=str(e))
    raise e


@router.get("")
def list_scripts(
    search: Optional[str] = Query(None, description="Substring filter on script name"),
    db: Session = Depends(get_db),
):
    """All scripts, newest first, with their current statistics."""
    scripts = ScriptService(db).list_scripts(search)
    return {
        "success": True,
        "data": [script_to_dict(s) for s in scripts],
    }


@router.get("/check-name")
def check_name(
    name: str = Query(..., description="Candidate script name"),
    exclude_id: Optional[int] = Query(None, description="Script being renamed"),
    db: Session = Depends(get_db),
):
    available = ScriptService(db).is_name_available(name, exclude_id=exclude_id)
    return {"success": True, "data": {"available": available}}


@router.get("/compare")
def compare_scripts(
    ids: str = Query(..., description="Comma-separated script ids, at most 4 are used"),
    db: Session = Depends(get_db),
):
    """Stats, tags and channel breakdown of several scripts, in the order given."""
    try:
        script_ids = [int(part) for part in ids.split(",") if part.strip()]
    except ValueError:
        raise HTTPException(status_code=400, detail="ids must be comma-separated integers")
    if not script_ids:
        raise HTTPException(status_code=400, detail="No script ids given")

    return {"success": True, "data": StatsQueryService(db).compare_scripts(script_ids)}


@router.post("")
def create_script(
    payload: ScriptCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    try:
        script = ScriptService(db).create_script(
            name=payload.name,
            parent_id=payload.parent_id,
            front_content=payload.front_content,
            mid_content=payload.mid_content,
            end_content=payload.end_content,
            tag_ids=payload.tag_ids,
        )
    except (ScriptNameConflictError, ScriptLineageError, ValueError) as e:
        _raise_for(e)

    background_tasks.add_task(run_stats_recompute)
    return {"success": True, "data": script_to_dict(script, include_stat=False)}


@router.get("/{script_id}")
def get_script(script_id: int, db: Session = Depends(get_db)):
    try:
        script = ScriptService(db).get_script(script_id)
    except ScriptNotFoundError as e:
        _raise_for(e)
    return {"success": True, "data": script_to_dict(script)}


@router.put("/{script_id}")
def update_script(
    script_id: int,
    payload: ScriptUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    try:
        script = ScriptService(db).update_script(script_id, **payload.model_dump(exclude_unset=True))
    except (ScriptNotFoundError, ScriptNameConflictError, ScriptLineageError, ValueError) as e:
        _raise_for(e)

    background_tasks.add_task(run_stats_recompute)
    return {"success": True, "data": script_to_dict(script, include_stat=False)}


@router.delete("/{script_id}")
def delete_script(
    script_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    try:
        ScriptService(db).delete_script(script_id)
    except ScriptNotFoundError as e:
        _raise_for(e)

    background_tasks.add_task(run_stats_recompute)
    return {"success": True, "message": "Script deleted"}


@router.post("/batch-delete")
def batch_delete(
    payload: BatchDeleteRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    if not payload.ids:
        raise HTTPException(status_code=400, detail="No script ids given")

    deleted = ScriptService(db).batch_delete(payload.ids)
    background_tasks.add_task(run_stats_recompute)
    return {"success": True, "data": {"deleted": deleted}}


@router.post("/import/parse")
def parse_import(payload: ImportParseRequest):
    """Preview a bulk text import without saving anything."""
    result = parse_script_text(payload.text)
    return {"success": True, "data": result.to_dict()}


@router.post("/import/save")
def save_import(
    payload: ImportSaveRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    parsed = [ParsedScript(**s.model_dump()) for s in payload.scripts]
    try:
        result = ScriptService(db).save_imported(parsed)
    except Exception as e:
        db.rollback()
        log.error(f"Error saving script import: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    if result["created"]:
        background_tasks.add_task(run_stats_recompute)
    return {"success": True, "data": result}


@router.get("/{script_id}/channel-stats")
def get_script_channel_stats(script_id: int, db: Session = Depends(get_db)):
    """Per-channel statistics of one script, highest cost first."""
    try:
        ScriptService(db).get_script(script_id)
    except ScriptNotFoundError as e:
        _raise_for(e)
    return {"success": True, "data": StatsQueryService(db).get_script_channel_stats(script_id)}
