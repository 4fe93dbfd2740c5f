"""
System config service - admin-editable matching lists.
"""
import json
from typing import Dict, Iterable, List

from sqlalchemy.orm import Session

from scriptboard.models.script import Script
from scriptboard.models.system_config import (
    SystemConfig,
    LIST_CONFIG_KEYS,
    CONTENT_TYPES_KEY,
    DISABLED_CONTENT_TYPES_KEY,
)
from scriptboard.utils.logger import log

CONTENT_TYPE_LENGTH = 2


def get_list_config(db: Session, key: str) -> List[str]:
    row = db.query(SystemConfig).filter(SystemConfig.key == key).first()
    if row is None:
        return []
    try:
        value = json.loads(row.value or "[]")
    except ValueError:
        log.warning(f"system_config {key} is not valid JSON, treating as empty")
        return []
    return [str(v) for v in value] if isinstance(value, list) else []


def get_all_list_configs(db: Session) -> Dict[str, List[str]]:
    return {key: get_list_config(db, key) for key in LIST_CONFIG_KEYS}


def set_list_config(db: Session, key: str, values: Iterable[str]) -> SystemConfig:
    """Replace a list config. Raises ValueError for unknown keys."""
    if key not in LIST_CONFIG_KEYS:
        raise ValueError(f"Unknown config key: {key}. Valid keys: {', '.join(LIST_CONFIG_KEYS)}")

    cleaned = []
    for v in values:
        v = str(v).strip()
        if v and v not in cleaned:
            cleaned.append(v)

    row = db.query(SystemConfig).filter(SystemConfig.key == key).first()
    if row is None:
        row = SystemConfig(key=key)
        db.add(row)
    row.value = json.dumps(cleaned, ensure_ascii=False)
    db.commit()
    db.refresh(row)
    return row


def register_content_types(db: Session, names: Iterable[str]) -> List[str]:
    """
    Add the trailing two characters of each name as a content type, unless
    already enabled or explicitly disabled. Returns the newly added types.
    """
    existing = get_list_config(db, CONTENT_TYPES_KEY)
    disabled = get_list_config(db, DISABLED_CONTENT_TYPES_KEY)
    known = set(existing) | set(disabled)

    added = []
    for name in names:
        if len(name) < CONTENT_TYPE_LENGTH:
            continue
        content_type = name[-CONTENT_TYPE_LENGTH:]
        if content_type in known:
            continue
        known.add(content_type)
        added.append(content_type)

    if added:
        set_list_config(db, CONTENT_TYPES_KEY, existing + added)
        log.info(f"Registered {len(added)} new content types: {added}")
    return added


def scan_content_types(db: Session) -> List[str]:
    """Detect content types from the whole script library."""
    names = [name for (name,) in db.query(Script.name).order_by(Script.id).all()]
    return register_content_types(db, names)
