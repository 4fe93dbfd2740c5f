"""
Period workbook upload API

Uploads are accepted immediately and processed in the background; poll
GET /uploads/{id} for status.
"""
import os
import re
from datetime import datetime
from urllib.parse import quote

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from scriptboard.config import get_settings
from scriptboard.models.base import get_db
from scriptboard.models.spend import ExcelUpload
from scriptboard.services.excel_import_service import (
    TEMPLATE_FILENAME,
    build_template_workbook,
    ingest_workbook,
)
from scriptboard.services.stats_processor import run_stats_recompute
from scriptboard.utils.logger import log

settings = get_settings()

router = APIRouter(prefix="/uploads", tags=["uploads"])

_UNSAFE_CHARS_RE = re.compile(r"[^\w.\-]+")


def safe_filename(filename: str) -> str:
    """Timestamped name with path separators and unsafe characters replaced."""
    base_name = os.path.basename(filename)
    stamp = datetime.utcnow().strftime("%Y%m%d%H%M%S%f")
    return f"{stamp}_{_UNSAFE_CHARS_RE.sub('_', base_name)}"


def upload_to_dict(upload: ExcelUpload) -> dict:
    return {
        "id": upload.id,
        "filename": upload.filename,
        "period": upload.period,
        "row_count": upload.row_count,
        "status": upload.status,
        "message": upload.message,
        "error": upload.error,
        "created_at": upload.created_at.isoformat() if upload.created_at else None,
    }


@router.post("")
async def upload_workbook(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    period: str = Form(..., description="Reporting period label, e.g. 2024-W23"),
    db: Session = Depends(get_db),
):
    """
    Store a period workbook and queue it for ingestion.

    Returns the upload id right away; parsing, row storage and the
    statistics recompute happen in the background.
    """
    period = period.strip()
    if not period:
        raise HTTPException(status_code=400, detail="Period must not be empty")

    ext = os.path.splitext(file.filename or "")[1].lower()
    if ext not in settings.allowed_upload_extensions:
        raise HTTPException(
            status_code=400,
            detail=f"File must be one of: {', '.join(settings.allowed_upload_extensions)}",
        )

    contents = await file.read()
    if len(contents) > settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail="File too large")

    os.makedirs(settings.upload_dir, exist_ok=True)
    file_path = os.path.join(settings.upload_dir, safe_filename(file.filename))
    with open(file_path, "wb") as f:
        f.write(contents)

    upload = ExcelUpload(filename=file.filename, period=period, file_path=file_path, status="pending")
    db.add(upload)
    db.commit()
    db.refresh(upload)

    log.info(f"Upload {upload.id}: saved {file.filename} ({len(contents)} bytes) for period {period}")
    background_tasks.add_task(ingest_workbook, upload.id, file_path)

    return {"success": True, "data": {"upload_id": upload.id, "status": upload.status}}


@router.get("")
def list_uploads(db: Session = Depends(get_db)):
    """Upload history, newest first."""
    uploads = db.query(ExcelUpload).order_by(ExcelUpload.created_at.desc(), ExcelUpload.id.desc()).all()
    return {"success": True, "data": [upload_to_dict(u) for u in uploads]}


@router.get("/template")
def download_template():
    """Empty workbook with the 48 expected headers."""
    return StreamingResponse(
        build_template_workbook(),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f"attachment; filename=\"template.xlsx\"; filename*=UTF-8''{quote(TEMPLATE_FILENAME)}"},
    )


@router.get("/{upload_id}")
def get_upload_status(upload_id: int, db: Session = Depends(get_db)):
    upload = db.query(ExcelUpload).filter(ExcelUpload.id == upload_id).first()
    if upload is None:
        raise HTTPException(status_code=404, detail="Upload not found")
    return {"success": True, "data": upload_to_dict(upload)}


@router.delete("/{upload_id}")
def delete_upload(
    upload_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """Delete a period with all its rows; statistics are rebuilt without it."""
    upload = db.query(ExcelUpload).filter(ExcelUpload.id == upload_id).first()
    if upload is None:
        raise HTTPException(status_code=404, detail="Upload not found")

    file_path = upload.file_path
    db.delete(upload)
    db.commit()

    if file_path and os.path.exists(file_path):
        try:
            os.remove(file_path)
        except OSError as e:
            log.warning(f"Could not remove stored workbook {file_path}: {e}")

    background_tasks.add_task(run_stats_recompute)
    return {"success": True, "message": "Upload deleted"}
