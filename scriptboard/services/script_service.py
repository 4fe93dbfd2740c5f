"""
Script library service

CRUD over the script library. Every mutation changes what the statistics
tables should contain; callers schedule run_stats_recompute() afterwards.
"""
import re
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from scriptboard.models.script import Script, Tag, script_tags
from scriptboard.services.script_parser import ParsedScript
from scriptboard.services.system_config_service import register_content_types
from scriptboard.utils.logger import log

# Upper bound on the ancestor walk; deeper chains are treated as corrupt
MAX_LINEAGE_DEPTH = 100

SEGMENT_PRIORITY = ("front", "mid", "end")

_DATE_STAMP_RE = re.compile(r"^\d{5,6}")


class ScriptNameConflictError(Exception):
    """Another script already uses this name."""


class ScriptNotFoundError(Exception):
    """No script with the given id."""


class ScriptLineageError(Exception):
    """Parent is missing, is the script itself, or would close a cycle."""


class TagNotFoundError(Exception):
    """No tag with the given id."""


class TagNameConflictError(Exception):
    """Another tag already uses this name."""


class TagInUseError(Exception):
    """Tag is still attached to scripts."""


def script_to_dict(script: Script, include_stat: bool = True) -> Dict:
    data = {
        "id": script.id,
        "name": script.name,
        "parent_id": script.parent_id,
        "parent_name": script.parent.name if script.parent else None,
        "front_content": script.front_content,
        "mid_content": script.mid_content,
        "end_content": script.end_content,
        "tags": [tag_to_dict(t) for t in script.tags],
        "created_at": script.created_at.isoformat() if script.created_at else None,
        "updated_at": script.updated_at.isoformat() if script.updated_at else None,
    }
    if include_stat:
        stat = script.stat
        data["stat"] = None if stat is None else {
            "matched_rows": stat.matched_rows,
            "total_cost": stat.total_cost,
            "customers": stat.customers,
            "customer_cost": stat.customer_cost,
            "high_course_revenue": stat.high_course_revenue,
            "roi": stat.roi,
            "upload_count": stat.upload_count,
        }
    return data


def tag_to_dict(tag: Tag, script_count: Optional[int] = None) -> Dict:
    data = {"id": tag.id, "name": tag.name, "type": tag.type}
    if script_count is not None:
        data["script_count"] = script_count
    return data


class ScriptService:
    """Script library operations bound to one session."""

    def __init__(self, db: Session):
        self.db = db

    # ── Queries ─────────────────────────────────────────────────────

    def list_scripts(self, search: Optional[str] = None) -> List[Script]:
        query = self.db.query(Script).options(
            joinedload(Script.tags), joinedload(Script.stat), joinedload(Script.parent)
        )
        if search:
            query = query.filter(Script.name.contains(search.strip()))
        return query.order_by(Script.created_at.desc(), Script.id.desc()).all()

    def get_script(self, script_id: int) -> Script:
        script = self.db.query(Script).filter(Script.id == script_id).first()
        if script is None:
            raise ScriptNotFoundError(f"Script {script_id} not found")
        return script

    def is_name_available(self, name: str, exclude_id: Optional[int] = None) -> bool:
        query = self.db.query(Script.id).filter(Script.name == name.strip())
        if exclude_id is not None:
            query = query.filter(Script.id != exclude_id)
        return query.first() is None

    # ── Mutations ───────────────────────────────────────────────────

    def create_script(
        self,
        name: str,
        parent_id: Optional[int] = None,
        front_content: Optional[str] = None,
        mid_content: Optional[str] = None,
        end_content: Optional[str] = None,
        tag_ids: Optional[Iterable[int]] = None,
    ) -> Script:
        name = self._clean_name(name)
        if not self.is_name_available(name):
            raise ScriptNameConflictError(f"Script name already exists: {name}")
        if parent_id is not None:
            self.get_parent(parent_id)

        script = Script(
            name=name,
            parent_id=parent_id,
            front_content=front_content,
            mid_content=mid_content,
            end_content=end_content,
        )
        if tag_ids:
            script.tags = self._load_tags(tag_ids)

        self.db.add(script)
        self.db.commit()
        self.db.refresh(script)
        log.info(f"Created script {script.id}: {script.name}")
        return script

    def update_script(self, script_id: int, **changes) -> Script:
        """
        Apply a partial update. Recognised keys: name, parent_id,
        front_content, mid_content, end_content, tag_ids.
        """
        script = self.get_script(script_id)

        if "name" in changes and changes["name"] is not None:
            name = self._clean_name(changes["name"])
            if name != script.name and not self.is_name_available(name, exclude_id=script_id):
                raise ScriptNameConflictError(f"Script name already exists: {name}")
            script.name = name

        if "parent_id" in changes:
            parent_id = changes["parent_id"]
            if parent_id is not None:
                self.ensure_acyclic(script_id, parent_id)
            script.parent_id = parent_id

        for field in ("front_content", "mid_content", "end_content"):
            if field in changes:
                setattr(script, field, changes[field])

        if changes.get("tag_ids") is not None:
            script.tags = self._load_tags(changes["tag_ids"])

        self.db.commit()
        self.db.refresh(script)
        return script

    def delete_script(self, script_id: int) -> None:
        script = self.get_script(script_id)
        self.db.delete(script)
        self.db.commit()
        log.info(f"Deleted script {script_id}")

    def batch_delete(self, script_ids: Iterable[int]) -> int:
        ids = list(script_ids)
        if not ids:
            return 0
        scripts = self.db.query(Script).filter(Script.id.in_(ids)).all()
        for script in scripts:
            self.db.delete(script)
        self.db.commit()
        log.info(f"Batch deleted {len(scripts)} scripts")
        return len(scripts)

    # ── Lineage validation ──────────────────────────────────────────

    def get_parent(self, parent_id: int) -> Script:
        parent = self.db.query(Script).filter(Script.id == parent_id).first()
        if parent is None:
            raise ScriptLineageError(f"Parent script {parent_id} not found")
        return parent

    def ensure_acyclic(self, script_id: int, parent_id: int) -> None:
        """Reject a parent that is the script itself or one of its descendants."""
        if parent_id == script_id:
            raise ScriptLineageError("A script cannot be its own parent")

        current = self.get_parent(parent_id)
        for _ in range(MAX_LINEAGE_DEPTH):
            if current.parent_id is None:
                return
            if current.parent_id == script_id:
                raise ScriptLineageError("Parent change would create a lineage cycle")
            current = self.db.query(Script).filter(Script.id == current.parent_id).first()
            if current is None:
                return
        raise ScriptLineageError("Lineage chain too deep")

    # ── Tags ────────────────────────────────────────────────────────

    def list_tags(self) -> List[Tag]:
        return self.db.query(Tag).order_by(Tag.type, Tag.name).all()

    def tags_by_type(self) -> Dict[str, List[Dict]]:
        """Tags grouped by segment type, each with the number of scripts using it."""
        counts = dict(
            self.db.query(script_tags.c.tag_id, func.count(script_tags.c.script_id))
            .group_by(script_tags.c.tag_id)
            .all()
        )
        grouped: Dict[str, List[Dict]] = {}
        for tag in self.db.query(Tag).order_by(Tag.name).all():
            grouped.setdefault(tag.type or "", []).append(tag_to_dict(tag, counts.get(tag.id, 0)))
        return grouped

    def get_tag(self, tag_id: int) -> Tag:
        tag = self.db.get(Tag, tag_id)
        if tag is None:
            raise TagNotFoundError(f"Tag {tag_id} not found")
        return tag

    def create_tag(self, name: str, tag_type: str) -> Tag:
        name = self._clean_tag_name(name)
        self._check_tag_type(tag_type)
        if self.db.query(Tag.id).filter(Tag.name == name).first() is not None:
            raise TagNameConflictError(f"Tag already exists: {name}")

        tag = Tag(name=name, type=tag_type)
        self.db.add(tag)
        self.db.commit()
        self.db.refresh(tag)
        log.info(f"Created tag {tag.id}: {tag.name} [{tag.type}]")
        return tag

    def update_tag(self, tag_id: int, name: Optional[str] = None, tag_type: Optional[str] = None) -> Tag:
        tag = self.get_tag(tag_id)
        if name is not None:
            name = self._clean_tag_name(name)
            taken = self.db.query(Tag.id).filter(Tag.name == name, Tag.id != tag_id).first()
            if taken is not None:
                raise TagNameConflictError(f"Tag already exists: {name}")
            tag.name = name
        if tag_type is not None:
            self._check_tag_type(tag_type)
            tag.type = tag_type
        self.db.commit()
        self.db.refresh(tag)
        return tag

    def delete_tag(self, tag_id: int) -> None:
        """Only tags no script uses can be deleted."""
        tag = self.get_tag(tag_id)
        if tag.scripts:
            raise TagInUseError(f"Tag {tag.name} is used by {len(tag.scripts)} scripts")
        self.db.delete(tag)
        self.db.commit()
        log.info(f"Deleted tag {tag_id}")

    # ── Bulk import ─────────────────────────────────────────────────

    def save_imported(self, parsed: Iterable[ParsedScript]) -> Dict:
        """
        Persist parsed scripts. Existing names are skipped, tags are
        upserted by name, and new content types are registered.
        """
        parsed = list(parsed)
        tags = self._upsert_tags(parsed)

        existing = {name for (name,) in self.db.query(Script.name).all()}
        created, skipped = [], []

        for item in parsed:
            if not item.name or item.name in existing:
                skipped.append(item.name)
                continue
            script = Script(
                name=item.name,
                front_content=item.front_content or None,
                mid_content=item.mid_content or None,
                end_content=item.end_content or None,
            )
            names = dict.fromkeys(item.front_tag_names + item.mid_tag_names + item.end_tag_names)
            script.tags = [tags[n] for n in names]
            self.db.add(script)
            existing.add(item.name)
            created.append(item.name)

        self.db.commit()
        new_types = register_content_types(self.db, created)

        log.info(f"Script import: {len(created)} created, {len(skipped)} skipped")
        return {
            "created": len(created),
            "skipped": len(skipped),
            "skipped_names": skipped,
            "new_content_types": new_types,
        }

    def _upsert_tags(self, parsed: List[ParsedScript]) -> Dict[str, Tag]:
        wanted: Dict[str, str] = {}
        for segment in SEGMENT_PRIORITY:
            for item in parsed:
                for tag_name in getattr(item, f"{segment}_tag_names"):
                    wanted.setdefault(tag_name, segment)

        tags = {t.name: t for t in self.db.query(Tag).filter(Tag.name.in_(list(wanted))).all()} if wanted else {}
        for tag_name, segment in wanted.items():
            if tag_name not in tags:
                tag = Tag(name=tag_name, type=segment)
                self.db.add(tag)
                tags[tag_name] = tag
        self.db.flush()
        return tags

    # ── Maintenance ─────────────────────────────────────────────────

    def strip_name_date_stamps(self, dry_run: bool = False) -> Dict:
        """
        Remove a leading 5-6 digit date stamp from every script name.

        Renames that would collide with another script, or leave an empty
        name, are skipped.
        """
        renamed, skipped = [], []
        claimed = set()
        for script in self.db.query(Script).order_by(Script.id).all():
            cleaned = _DATE_STAMP_RE.sub("", script.name).strip()
            if cleaned == script.name:
                continue
            if not cleaned or cleaned in claimed or not self.is_name_available(cleaned, exclude_id=script.id):
                skipped.append((script.name, cleaned))
                continue
            renamed.append((script.name, cleaned))
            claimed.add(cleaned)
            if not dry_run:
                script.name = cleaned
                self.db.flush()

        if dry_run:
            self.db.rollback()
        else:
            self.db.commit()
        return {"renamed": renamed, "skipped": skipped}

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    def _clean_name(name: Optional[str]) -> str:
        name = (name or "").strip()
        if not name:
            raise ValueError("Script name must not be empty")
        return name

    @staticmethod
    def _clean_tag_name(name: Optional[str]) -> str:
        name = (name or "").strip()
        if not name:
            raise ValueError("Tag name must not be empty")
        return name

    @staticmethod
    def _check_tag_type(tag_type: Optional[str]) -> None:
        if tag_type not in SEGMENT_PRIORITY:
            raise ValueError(f"Tag type must be one of: {', '.join(SEGMENT_PRIORITY)}")

    def _load_tags(self, tag_ids: Iterable[int]) -> List[Tag]:
        ids = list(tag_ids)
        return self.db.query(Tag).filter(Tag.id.in_(ids)).all() if ids else []
