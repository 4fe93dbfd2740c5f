"""
Statistics Recomputation Pipeline

Transforms scripts + spend rows into:
- script_stats          (one aggregate per matched script)
- script_channel_stats  (one aggregate per script per observed channel)
- channel_period_stats  (one aggregate per upload per channel, no matching)

Full recompute, never incremental: every pass supersedes the previous one,
stale rows disappear, and re-running with unchanged inputs is a no-op.
"""
import threading
import time
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from scriptboard.models import base
from scriptboard.models.script import Script
from scriptboard.models.spend import ExcelUpload, SpendRow
from scriptboard.models.stats import ScriptStat, ScriptChannelStat, ChannelPeriodStat
from scriptboard.services.row_aggregator import (
    aggregate_rows,
    is_data_row,
    partition_by_channel,
)
from scriptboard.services.script_matcher import (
    MatchConfig,
    load_match_config,
    prepare_material,
)
from scriptboard.utils.logger import log


class StatsProcessor:
    """
    Rebuilds every statistics table from current data.

    Usage:
        processor = StatsProcessor(db)
        result = processor.recompute_all()
    """

    def __init__(self, db: Session, config: Optional[MatchConfig] = None):
        self.db = db
        self._config = config

    def recompute_all(self) -> Dict:
        """Main pipeline entry point. Idempotent."""
        start_time = time.time()
        log.info("StatsProcessor: starting full recompute")

        script_counts = self.recalculate_script_stats()
        channel_counts = self.recalculate_channel_period_stats()

        duration = time.time() - start_time
        result = {
            "script_stats": script_counts,
            "channel_period_stats": channel_counts,
            "duration_seconds": round(duration, 2),
        }

        log.info(
            f"StatsProcessor: done in {duration:.1f}s, "
            f"{script_counts['upserted']} scripts matched, "
            f"{script_counts['cleared']} cleared, "
            f"{channel_counts['created']} channel-period rows"
        )
        return result

    # ── Per-script pass ─────────────────────────────────────────────

    def recalculate_script_stats(self) -> Dict:
        """Upsert ScriptStat / ScriptChannelStat for every script; clear unmatched scripts."""
        config = self._config if self._config is not None else load_match_config(self.db)

        scripts = self.db.query(Script).order_by(Script.id).all()
        rows = [
            r for r in self.db.query(SpendRow).order_by(SpendRow.id).all()
            if is_data_row(r.material_name)
        ]
        upload_count = self.db.query(ExcelUpload).count()

        # Normalize each material name once, not once per script
        prepared = [(prepare_material(r.material_name, config), r) for r in rows]

        counts = {"scripts": len(scripts), "upserted": 0, "cleared": 0, "channel_rows": 0, "channels_pruned": 0}

        for script in scripts:
            matched = [row for material, row in prepared if material.matches(script.name)]

            if not matched:
                self._clear_script(script.id)
                counts["cleared"] += 1
                continue

            self._upsert_script_stat(script.id, matched, upload_count)
            counts["upserted"] += 1

            written, pruned = self._sync_channel_stats(script.id, matched)
            counts["channel_rows"] += written
            counts["channels_pruned"] += pruned

        self.db.commit()
        return counts

    def _clear_script(self, script_id: int) -> None:
        self.db.query(ScriptStat).filter(ScriptStat.script_id == script_id).delete()
        self.db.query(ScriptChannelStat).filter(ScriptChannelStat.script_id == script_id).delete()

    def _upsert_script_stat(self, script_id: int, rows: List[SpendRow], upload_count: int) -> None:
        data = aggregate_rows(rows)
        data["upload_count"] = upload_count

        stat = self.db.query(ScriptStat).filter(ScriptStat.script_id == script_id).first()
        if stat is None:
            stat = ScriptStat(script_id=script_id)
            self.db.add(stat)

        for field, value in data.items():
            setattr(stat, field, value)

    def _sync_channel_stats(self, script_id: int, rows: List[SpendRow]) -> tuple:
        groups = partition_by_channel(rows)

        stale = self.db.query(ScriptChannelStat).filter(ScriptChannelStat.script_id == script_id)
        if groups:
            stale = stale.filter(ScriptChannelStat.channel.notin_(list(groups)))
        pruned = stale.delete()

        existing = {
            s.channel: s
            for s in self.db.query(ScriptChannelStat).filter(ScriptChannelStat.script_id == script_id).all()
        }

        for channel, channel_rows in groups.items():
            stat = existing.get(channel)
            if stat is None:
                stat = ScriptChannelStat(script_id=script_id, channel=channel)
                self.db.add(stat)
            for field, value in aggregate_rows(channel_rows).items():
                setattr(stat, field, value)

        return len(groups), pruned

    # ── Per-period-channel pass ─────────────────────────────────────

    def recalculate_channel_period_stats(self) -> Dict:
        """Delete every ChannelPeriodStat, then rebuild one per (upload, channel) observed."""
        cleared = self.db.query(ChannelPeriodStat).delete()

        uploads = self.db.query(ExcelUpload).order_by(ExcelUpload.created_at, ExcelUpload.id).all()
        created = 0

        for upload in uploads:
            rows = (
                self.db.query(SpendRow)
                .filter(SpendRow.upload_id == upload.id)
                .order_by(SpendRow.id)
                .all()
            )
            valid_rows = [r for r in rows if is_data_row(r.material_name)]

            for channel, channel_rows in partition_by_channel(valid_rows).items():
                stat = ChannelPeriodStat(upload_id=upload.id, period=upload.period, channel=channel)
                for field, value in aggregate_rows(channel_rows).items():
                    setattr(stat, field, value)
                self.db.add(stat)
                created += 1

        self.db.commit()
        return {"uploads": len(uploads), "created": created, "cleared": cleared}


# ── Background entry points ─────────────────────────────────────────

# Passes read-then-replace the statistics tables; overlapping passes must queue
_recompute_lock = threading.Lock()


def run_stats_recompute(channel_only: bool = False) -> Optional[Dict]:
    """
    Background task: full statistics recompute in its own session.

    Fire-and-forget. Failures are logged and swallowed; the triggering
    operation has already completed and statistics stay at the last
    successful pass until the next trigger.
    """
    with _recompute_lock:
        db = base.SessionLocal()
        try:
            processor = StatsProcessor(db)
            if channel_only:
                return processor.recalculate_channel_period_stats()
            return processor.recompute_all()
        except Exception as e:
            db.rollback()
            log.error(f"Background stats recompute failed: {str(e)}")
            return None
        finally:
            db.close()
