"""
Period workbook ingestion

Reads an uploaded period spreadsheet (fixed 48-column layout, A..AV),
validates the header row, stores every data line as a SpendRow and then
triggers a full statistics recompute.

Status progression on the ExcelUpload record:
    pending -> validating -> parsing -> matching -> done
Any step may end in "error" with the reason stored on the record.
"""
import io
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from scriptboard.config import get_settings
from scriptboard.models import base
from scriptboard.models.spend import ExcelUpload, SpendRow
from scriptboard.services.stats_processor import run_stats_recompute
from scriptboard.utils.logger import log

settings = get_settings()

MAX_REPORTED_ERRORS = 5

TEMPLATE_SHEET_NAME = "数据模板"
TEMPLATE_FILENAME = "数据上传模板.xlsx"
TEMPLATE_COLUMN_WIDTH = 16


class WorkbookValidationError(Exception):
    """Workbook unreadable, wrong header layout, or no data rows."""


@dataclass(frozen=True)
class ColumnDef:
    index: int
    name: str
    field: Optional[str]
    strategy: str  # sum, avg, recalc, first, channel, ignore


def _col(index, name, field, strategy):
    return ColumnDef(index=index, name=name, field=field, strategy=strategy)


# recalc columns are recomputed from sums; ignore columns are never stored
EXCEL_COLUMNS = [
    _col(0, "素材名", "material_name", "first"),
    _col(1, "投放时间", "delivery_date", "first"),
    _col(2, "广告渠道", "channel", "channel"),
    _col(3, "实际流水", None, "ignore"),
    _col(4, "总成本", "total_cost", "sum"),
    _col(5, "实际成本", None, "ignore"),
    _col(6, "展示数", "impressions", "sum"),
    _col(7, "获客成本", None, "recalc"),
    _col(8, "点击率", "click_rate", "avg"),
    _col(9, "3S完播率", "play_rate_3s", "avg"),
    _col(10, "完播率", "play_rate", "avg"),
    _col(11, "转化率", "conversion_rate", "avg"),
    _col(12, "平均展示消耗", None, "recalc"),
    _col(13, "点击数", "clicks", "sum"),
    _col(14, "平均点击消耗", None, "recalc"),
    _col(15, "获客数", "customers", "sum"),
    _col(16, "低价课人数", "low_course_count", "sum"),
    _col(17, "落地页转化率", "landing_conv_rate", "avg"),
    _col(18, "低价课流水", "low_course_revenue", "sum"),
    _col(19, "公众号关注人数", "wechat_followers", "sum"),
    _col(20, "公众号关注率", "wechat_follow_rate", "avg"),
    _col(21, "激活人数", "activations", "sum"),
    _col(22, "激活率", "activation_rate", "avg"),
    _col(23, "激活成本", None, "recalc"),
    _col(24, "添加人数", "additions", "sum"),
    _col(25, "添加率", "addition_rate", "avg"),
    _col(26, "添加成本", None, "recalc"),
    _col(27, "进群人数", "group_joins", "sum"),
    _col(28, "进群率", "group_join_rate", "avg"),
    _col(29, "第一天到播率", "day1_play_rate", "avg"),
    _col(30, "第二天到播率", "day2_play_rate", "avg"),
    _col(31, "第三天到播率", "day3_play_rate", "avg"),
    _col(32, "第四天到播率", "day4_play_rate", "avg"),
    _col(33, "第五天到播率", "day5_play_rate", "avg"),
    _col(34, "高沉浸用户数", "deep_users", "sum"),
    _col(35, "高沉浸率", "deep_rate", "avg"),
    _col(36, "第三天高沉浸到播率", "day3_deep_play_rate", "avg"),
    _col(37, "第三天高沉浸转化率", "day3_deep_conv_rate", "avg"),
    _col(38, "高价课人数", "high_course_count", "sum"),
    _col(39, "高价课支付率", "high_course_pay_rate", "avg"),
    _col(40, "第三天高价课人数", "day3_high_course", "sum"),
    _col(41, "第四天高价课人数", "day4_high_course", "sum"),
    _col(42, "第五天高价课人数", "day5_high_course", "sum"),
    _col(43, "高价课流水", "high_course_revenue", "sum"),
    _col(44, "退款人数", "refunds", "sum"),
    _col(45, "退款率", "refund_rate", "avg"),
    _col(46, "获客占比", None, "ignore"),
    _col(47, "ROI", None, "recalc"),
]

TEXT_FIELDS = ("material_name", "delivery_date", "channel")


def col_index_to_letter(index: int) -> str:
    """0-based column index to Excel letters: 0 -> A, 25 -> Z, 26 -> AA."""
    letters = ""
    n = index
    while n >= 0:
        letters = chr(65 + n % 26) + letters
        n = n // 26 - 1
    return letters


def validate_headers(headers: Sequence[Any]) -> List[str]:
    """Return a list of human-readable header errors (empty when valid)."""
    if len(headers) < len(EXCEL_COLUMNS):
        return [f"列数不足：期望 {len(EXCEL_COLUMNS)} 列，实际 {len(headers)} 列"]

    errors = []
    for col in EXCEL_COLUMNS:
        actual = _to_text(headers[col.index]) or ""
        if actual != col.name:
            errors.append(
                f"第{col.index + 1}列（{col_index_to_letter(col.index)}列）"
                f"应为「{col.name}」，实际为「{actual}」"
            )
    return errors


def summarize_errors(errors: List[str]) -> str:
    message = "；".join(errors[:MAX_REPORTED_ERRORS])
    if len(errors) > MAX_REPORTED_ERRORS:
        message += f"…（共{len(errors)}处错误）"
    return message


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and value.strip() == ""


def _to_number(value: Any) -> Optional[float]:
    if _is_blank(value):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def _to_text(value: Any) -> Optional[str]:
    if _is_blank(value):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip() or None


def parse_row(cells: Sequence[Any], row_index: int) -> Dict[str, Any]:
    """Map one worksheet line to SpendRow fields. material_name is "" when blank."""
    cells = list(cells) + [None] * max(0, len(EXCEL_COLUMNS) - len(cells))
    row: Dict[str, Any] = {"row_index": row_index}
    for col in EXCEL_COLUMNS:
        if col.field is None:
            continue
        value = cells[col.index]
        if col.field in TEXT_FIELDS:
            row[col.field] = _to_text(value)
        else:
            row[col.field] = _to_number(value)
    row["material_name"] = row["material_name"] or ""
    return row


def read_workbook(path: str) -> List[List[Any]]:
    """First worksheet as a list of raw cell lists, header included."""
    try:
        df = pd.read_excel(path, sheet_name=0, header=None, dtype=object)
    except Exception as e:
        raise WorkbookValidationError(f"无法读取文件，请确认上传的是有效的 .xlsx 或 .xls 文件 ({e})")
    df = df.astype(object).where(pd.notna(df), None)
    return df.values.tolist()


def parse_workbook(lines: List[List[Any]]) -> List[Dict[str, Any]]:
    """Validate the header line and parse every non-blank data line."""
    if len(lines) < 2:
        raise WorkbookValidationError("文件内容为空或只有表头，没有数据行")

    errors = validate_headers(lines[0])
    if errors:
        raise WorkbookValidationError(f"列名校验失败：{summarize_errors(errors)}")

    data_lines = [line for line in lines[1:] if not all(_is_blank(c) for c in line)]
    rows = [parse_row(line, i) for i, line in enumerate(data_lines, start=1)]
    return [r for r in rows if r["material_name"]]


def build_template_workbook() -> io.BytesIO:
    """Header-only .xlsx in the upload layout, for users to fill in."""
    buf = io.BytesIO()
    headers = pd.DataFrame([[c.name for c in EXCEL_COLUMNS]])
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        headers.to_excel(writer, sheet_name=TEMPLATE_SHEET_NAME, header=False, index=False)
        sheet = writer.sheets[TEMPLATE_SHEET_NAME]
        for column in EXCEL_COLUMNS:
            sheet.column_dimensions[col_index_to_letter(column.index)].width = TEMPLATE_COLUMN_WIDTH
    buf.seek(0)
    return buf


def _set_status(db, upload: ExcelUpload, status: str, message: str = None, error: str = None) -> None:
    upload.status = status
    upload.message = message
    upload.error = error
    db.commit()


def ingest_workbook(upload_id: int, path: str) -> None:
    """
    Background task: parse a stored workbook into SpendRows, then recompute.

    Failures end in status "error" with the reason on the upload record.
    """
    db = base.SessionLocal()
    try:
        upload = db.query(ExcelUpload).filter(ExcelUpload.id == upload_id).first()
        if upload is None:
            log.warning(f"Workbook ingest: upload {upload_id} no longer exists")
            return

        try:
            _set_status(db, upload, "validating", "正在验证文件格式...")
            rows = parse_workbook(read_workbook(path))
        except WorkbookValidationError as e:
            log.warning(f"Workbook ingest: upload {upload_id} rejected: {e}")
            _set_status(db, upload, "error", error=str(e))
            return

        total = len(rows)
        upload.row_count = total
        _set_status(db, upload, "parsing", f"正在解析数据（0/{total} 行）...")

        batch_size = settings.upload_batch_size
        for start in range(0, total, batch_size):
            batch = rows[start:start + batch_size]
            db.bulk_insert_mappings(SpendRow, [dict(r, upload_id=upload_id) for r in batch])
            db.commit()
            done = min(start + batch_size, total)
            upload.message = f"正在解析数据（{done}/{total} 行）..."
            db.commit()

        _set_status(db, upload, "matching", "正在匹配脚本数据...")
    except Exception as e:
        db.rollback()
        log.error(f"Workbook ingest failed for upload {upload_id}: {str(e)}")
        # Earlier batches are already committed; a failed period keeps no rows
        removed = db.query(SpendRow).filter(SpendRow.upload_id == upload_id).delete()
        if removed:
            log.info(f"Workbook ingest: removed {removed} partial rows of upload {upload_id}")
        upload = db.query(ExcelUpload).filter(ExcelUpload.id == upload_id).first()
        if upload is not None:
            upload.row_count = 0
            _set_status(db, upload, "error", error=str(e))
        else:
            db.commit()
        return
    finally:
        db.close()

    result = run_stats_recompute()

    db = base.SessionLocal()
    try:
        upload = db.query(ExcelUpload).filter(ExcelUpload.id == upload_id).first()
        if upload is None:
            return
        if result is None:
            _set_status(db, upload, "error", error="统计重算失败")
        else:
            _set_status(db, upload, "done", f"解析完成，共录入 {upload.row_count} 行数据")
        log.info(f"Workbook ingest: upload {upload_id} ({upload.period}) {upload.status}")
    finally:
        db.close()
