"""
Statistics dashboard API
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Optional

from scriptboard.models.base import get_db
from scriptboard.models.spend import ExcelUpload
from scriptboard.services.stats_query_service import StatsQueryService

router = APIRouter(prefix="/stats", tags=["stats"])


def _ensure_upload(db: Session, upload_id: Optional[int]) -> None:
    if upload_id is None:
        return
    exists = db.query(ExcelUpload.id).filter(ExcelUpload.id == upload_id).first()
    if exists is None:
        raise HTTPException(status_code=404, detail="Upload not found")


@router.get("")
def get_overview(
    upload_id: Optional[int] = Query(None, description="Restrict to one period"),
    db: Session = Depends(get_db),
):
    """
    Dashboard overview

    Without upload_id: totals and rankings across all periods, plus
    top source scripts (lineage-inclusive) and top iteration scripts.
    With upload_id: the same totals for that period only.
    """
    _ensure_upload(db, upload_id)
    return {"success": True, "data": StatsQueryService(db).get_overview(upload_id)}


@router.get("/channels")
def get_channel_overview(db: Session = Depends(get_db)):
    """Channel totals across periods and the period x channel matrix."""
    return {"success": True, "data": StatsQueryService(db).get_channel_overview()}


@router.get("/detailed")
def get_detailed_stats(
    upload_id: Optional[int] = Query(None, description="Restrict to one period"),
    db: Session = Depends(get_db),
):
    """Every summed, averaged and derived metric over all matched scripts."""
    _ensure_upload(db, upload_id)
    return {"success": True, "data": StatsQueryService(db).get_detailed_stats(upload_id)}


@router.get("/market")
def get_market_summary(db: Session = Depends(get_db)):
    """Market totals from the summary rows of every uploaded period."""
    return {"success": True, "data": StatsQueryService(db).get_market_summary()}


@router.get("/by-tag")
def get_tag_stats(db: Session = Depends(get_db)):
    """Front / mid / end tag rollups with ROI."""
    return {"success": True, "data": StatsQueryService(db).get_tag_stats()}


@router.get("/by-content-type")
def get_content_type_stats(db: Session = Depends(get_db)):
    return {"success": True, "data": StatsQueryService(db).get_content_type_stats()}
