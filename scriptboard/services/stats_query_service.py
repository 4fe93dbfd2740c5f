"""
Statistics query service

Read-side views over the precomputed statistics tables for the dashboard.
Nothing here writes; the tables are owned by StatsProcessor.
"""
from types import SimpleNamespace
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session, joinedload

from scriptboard.models.script import Script
from scriptboard.models.system_config import CONTENT_TYPES_KEY
from scriptboard.models.spend import ExcelUpload, SpendRow
from scriptboard.models.stats import ScriptStat, ScriptChannelStat, ChannelPeriodStat
from scriptboard.services.lineage import LineageAggregator
from scriptboard.services.row_aggregator import aggregate_rows, is_data_row, safe_ratio
from scriptboard.services.script_matcher import load_match_config, prepare_material
from scriptboard.services.script_service import SEGMENT_PRIORITY, script_to_dict
from scriptboard.services.system_config_service import get_list_config

TOP_LIST_SIZE = 10
PODIUM_SIZE = 3
COMPARE_LIMIT = 4
MARKET_TOTAL_MARKER = "合计"


def _ranked(items: List[Dict], key: str, limit: int) -> List[Dict]:
    ranked = sorted(items, key=lambda s: s[key] or 0, reverse=True)
    return [{"name": s["name"], "value": s[key]} for s in ranked[:limit]]


def _overview(per_script: List[Dict]) -> Dict:
    total_cost = sum(s["total_cost"] for s in per_script)
    total_customers = sum(s["customers"] for s in per_script)
    total_revenue = sum(s["high_course_revenue"] for s in per_script)
    with_roi = [s for s in per_script if s["roi"] is not None]

    return {
        "total_cost": total_cost,
        "total_customers": total_customers,
        "avg_customer_cost": safe_ratio(total_cost, total_customers),
        "roi": safe_ratio(total_revenue, total_cost),
        "script_count": len(per_script),
        "top10_cost": _ranked(per_script, "total_cost", TOP_LIST_SIZE),
        "top10_customers": _ranked(per_script, "customers", TOP_LIST_SIZE),
        "top10_roi": _ranked(with_roi, "roi", TOP_LIST_SIZE),
        "top3_cost": _ranked(per_script, "total_cost", PODIUM_SIZE),
        "top3_revenue": _ranked(per_script, "high_course_revenue", PODIUM_SIZE),
    }


def _combine(per_script: List) -> Dict:
    """Merge per-script aggregates (ScriptStat rows or the same shape) into one metric set."""
    per_script = list(per_script)
    data = aggregate_rows(per_script)
    data["matched_rows"] = sum(s.matched_rows for s in per_script)
    data["script_count"] = len(per_script)
    return data


def _rollup(stats: List, **label) -> Dict:
    total_cost = sum(s.total_cost for s in stats)
    revenue = sum(s.high_course_revenue for s in stats)
    return dict(
        label,
        script_count=len(stats),
        total_cost=total_cost,
        customers=sum(s.customers for s in stats),
        high_course_revenue=revenue,
        roi=safe_ratio(revenue, total_cost),
    )


def _by_cost(items: List[Dict]) -> List[Dict]:
    return sorted(items, key=lambda r: r["total_cost"], reverse=True)


class StatsQueryService:
    """Dashboard statistics views."""

    def __init__(self, db: Session):
        self.db = db

    def get_overview(self, upload_id: Optional[int] = None) -> Dict:
        """Across all periods from script_stats, or for one period when upload_id is given."""
        if upload_id is not None:
            return self.get_period_overview(upload_id)

        stats = (
            self.db.query(ScriptStat)
            .options(joinedload(ScriptStat.script))
            .order_by(ScriptStat.script_id)
            .all()
        )
        per_script = [
            {
                "name": s.script.name,
                "total_cost": s.total_cost,
                "customers": s.customers,
                "high_course_revenue": s.high_course_revenue,
                "roi": s.roi,
            }
            for s in stats
        ]

        lineage = LineageAggregator.from_db(self.db)
        data = _overview(per_script)
        data["top_source_scripts"] = lineage.top_source_scripts()
        data["top_iteration_scripts"] = lineage.top_iteration_scripts()
        return data

    def _match_period(self, upload_id: int) -> List[Tuple[Script, List[SpendRow]]]:
        """Scripts with the rows they match in one period, using the current config."""
        config = load_match_config(self.db)
        rows = [
            r for r in self.db.query(SpendRow).filter(SpendRow.upload_id == upload_id).order_by(SpendRow.id).all()
            if is_data_row(r.material_name)
        ]
        prepared = [(prepare_material(r.material_name, config), r) for r in rows]

        result = []
        for script in self.db.query(Script).order_by(Script.id).all():
            matched = [r for material, r in prepared if material.matches(script.name)]
            if matched:
                result.append((script, matched))
        return result

    def get_period_overview(self, upload_id: int) -> Dict:
        """Matches one period's rows on the fly; lineage rankings are left empty."""
        per_script = []
        for script, matched in self._match_period(upload_id):
            total_cost = sum(r.total_cost or 0 for r in matched)
            revenue = sum(r.high_course_revenue or 0 for r in matched)
            per_script.append({
                "name": script.name,
                "total_cost": total_cost,
                "customers": sum(r.customers or 0 for r in matched),
                "high_course_revenue": revenue,
                "roi": safe_ratio(revenue, total_cost),
            })

        data = _overview(per_script)
        data["top_source_scripts"] = []
        data["top_iteration_scripts"] = []
        return data

    def get_detailed_stats(self, upload_id: Optional[int] = None) -> Dict:
        """
        Full metric set over all matched scripts.

        Sums add up the per-script sums, averages are the mean of the
        non-null per-script averages, and cost ratios are recomputed from
        the combined sums. A row matched by two scripts counts for both,
        as it does in the overview.
        """
        if upload_id is None:
            per_script = self.db.query(ScriptStat).order_by(ScriptStat.script_id).all()
        else:
            per_script = [
                SimpleNamespace(**aggregate_rows(matched))
                for _, matched in self._match_period(upload_id)
            ]
        return _combine(per_script)

    def get_market_summary(self) -> Dict:
        """Whole-market totals taken from each period's own summary ("合计") rows."""
        rows = self.db.query(SpendRow).filter(SpendRow.material_name.contains(MARKET_TOTAL_MARKER)).all()
        total_cost = sum(r.total_cost or 0 for r in rows)
        total_customers = sum(r.customers or 0 for r in rows)
        revenue = sum(r.high_course_revenue or 0 for r in rows)
        return {
            "total_cost": total_cost,
            "total_customers": total_customers,
            "avg_customer_cost": safe_ratio(total_cost, total_customers),
            "roi": safe_ratio(revenue, total_cost),
        }

    def get_tag_stats(self) -> Dict[str, List[Dict]]:
        """Per-segment tag rollups of script statistics, highest cost first."""
        scripts = (
            self.db.query(Script)
            .options(joinedload(Script.tags), joinedload(Script.stat))
            .order_by(Script.id)
            .all()
        )
        segments: Dict[str, Dict[str, Dict]] = {segment: {} for segment in SEGMENT_PRIORITY}
        for script in scripts:
            if script.stat is None:
                continue
            for tag in script.tags:
                bucket = segments.get(tag.type)
                if bucket is None:
                    continue
                entry = bucket.setdefault(tag.name, {"tag_name": tag.name, "scripts": []})
                entry["scripts"].append(script.stat)

        return {
            segment: _by_cost([_rollup(e["scripts"], tag_name=e["tag_name"]) for e in bucket.values()])
            for segment, bucket in segments.items()
        }

    def get_content_type_stats(self) -> List[Dict]:
        """Script statistics grouped by configured content-type suffix."""
        content_types = get_list_config(self.db, CONTENT_TYPES_KEY)
        if not content_types:
            return []

        stats = (
            self.db.query(ScriptStat)
            .options(joinedload(ScriptStat.script))
            .order_by(ScriptStat.script_id)
            .all()
        )
        return _by_cost([
            _rollup([s for s in stats if s.script.name.endswith(content_type)], content_type=content_type)
            for content_type in content_types
        ])

    def compare_scripts(self, script_ids: Iterable[int]) -> List[Dict]:
        """Side-by-side view of up to four scripts in the requested order; unknown ids are skipped."""
        ids = list(dict.fromkeys(script_ids))[:COMPARE_LIMIT]
        if not ids:
            return []

        found = {
            s.id: s
            for s in self.db.query(Script)
            .options(joinedload(Script.tags), joinedload(Script.stat), joinedload(Script.parent))
            .filter(Script.id.in_(ids))
            .all()
        }
        result = []
        for script_id in ids:
            script = found.get(script_id)
            if script is None:
                continue
            data = script_to_dict(script)
            data["channel_stats"] = self.get_script_channel_stats(script_id)
            result.append(data)
        return result

    def get_channel_overview(self) -> Dict:
        stats = self.db.query(ChannelPeriodStat).order_by(ChannelPeriodStat.id).all()
        uploads = self.db.query(ExcelUpload).order_by(ExcelUpload.created_at, ExcelUpload.id).all()

        cost_by_channel: Dict[str, float] = {}
        for s in stats:
            cost_by_channel[s.channel] = cost_by_channel.get(s.channel, 0.0) + s.total_cost
        all_channels = sorted(cost_by_channel, key=lambda c: cost_by_channel[c], reverse=True)

        overall = []
        for channel in all_channels:
            rows = [s for s in stats if s.channel == channel]
            total_cost = sum(r.total_cost for r in rows)
            customers = sum(r.customers for r in rows)
            revenue = sum(r.high_course_revenue for r in rows)
            overall.append({
                "channel": channel,
                "total_cost": total_cost,
                "customers": customers,
                "high_course_revenue": revenue,
                "roi": safe_ratio(revenue, total_cost),
                "customer_cost": safe_ratio(total_cost, customers),
                "period_count": len(rows),
            })

        by_period = []
        for upload in uploads:
            period_stats = {s.channel: s for s in stats if s.upload_id == upload.id}
            channels = []
            for channel in all_channels:
                s = period_stats.get(channel)
                if s is None:
                    channels.append({"channel": channel, "has_data": False})
                    continue
                channels.append({
                    "channel": channel,
                    "has_data": True,
                    "row_count": s.matched_rows,
                    "total_cost": s.total_cost,
                    "customers": s.customers,
                    "high_course_revenue": s.high_course_revenue,
                    "roi": s.roi,
                    "customer_cost": s.customer_cost,
                    "click_rate": s.click_rate,
                    "play_rate": s.play_rate,
                    "conversion_rate": s.conversion_rate,
                })
            by_period.append({"upload_id": upload.id, "period": upload.period, "channels": channels})

        return {"all_channels": all_channels, "overall": overall, "by_period": by_period}

    def get_script_channel_stats(self, script_id: int) -> List[Dict]:
        stats = (
            self.db.query(ScriptChannelStat)
            .filter(ScriptChannelStat.script_id == script_id)
            .order_by(ScriptChannelStat.total_cost.desc(), ScriptChannelStat.id)
            .all()
        )
        return [
            {
                "channel": s.channel,
                "matched_rows": s.matched_rows,
                "total_cost": s.total_cost,
                "customers": s.customers,
                "high_course_revenue": s.high_course_revenue,
                "customer_cost": s.customer_cost,
                "roi": s.roi,
                "click_rate": s.click_rate,
                "play_rate": s.play_rate,
                "conversion_rate": s.conversion_rate,
            }
            for s in stats
        ]
