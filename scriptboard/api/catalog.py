"""
Read-only lookups used by script forms and dashboard filters
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from scriptboard.models.base import get_db
from scriptboard.models.system_config import CONTENT_TYPES_KEY
from scriptboard.services.script_service import ScriptService, tag_to_dict
from scriptboard.services.system_config_service import get_list_config

router = APIRouter(tags=["catalog"])


@router.get("/tags")
def list_tags(db: Session = Depends(get_db)):
    """All tags, ordered by type then name."""
    return {"success": True, "data": [tag_to_dict(t) for t in ScriptService(db).list_tags()]}


@router.get("/content-types")
def list_content_types(db: Session = Depends(get_db)):
    return {"success": True, "data": get_list_config(db, CONTENT_TYPES_KEY)}
