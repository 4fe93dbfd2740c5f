"""
Statistics recompute pipeline tests.

Guards against:
1. Wrong aggregates for the basic agency/date/initials-prefixed material name
2. Non-idempotent passes (second run must leave identical tables)
3. Stats lingering for scripts that no longer match anything
4. Channel stats lingering for channels no longer observed
5. Summary rows and placeholder channels leaking into aggregates
"""
import json

from scriptboard.models.spend import ExcelUpload
from scriptboard.models.stats import ScriptStat, ScriptChannelStat, ChannelPeriodStat
from scriptboard.models.system_config import SystemConfig, CONTENT_TYPES_KEY
from scriptboard.services.row_aggregator import METRIC_FIELDS
from scriptboard.services.stats_processor import StatsProcessor, run_stats_recompute


def _snapshot(db):
    """Every stats row as comparable tuples, ignoring surrogate ids."""
    def rows(model, keys):
        return sorted(
            tuple(getattr(r, k) for k in keys + METRIC_FIELDS)
            for r in db.query(model).all()
        )
    return (
        rows(ScriptStat, ("script_id", "upload_count")),
        rows(ScriptChannelStat, ("script_id", "channel")),
        rows(ChannelPeriodStat, ("upload_id", "period", "channel")),
    )


# ---------------------------------------------------------------------------
# End-to-end
# ---------------------------------------------------------------------------

def test_end_to_end_single_row(db, make_script, make_upload):
    script = make_script("威塔课程")
    make_upload("2024-W01", [{
        "material_name": "代理-210601威塔课程-WJJ",
        "total_cost": 100,
        "customers": 2,
        "high_course_revenue": 50,
        "channel": "抖音",
    }])

    StatsProcessor(db).recompute_all()

    stat = db.query(ScriptStat).filter_by(script_id=script.id).one()
    assert stat.matched_rows == 1
    assert stat.total_cost == 100
    assert stat.customer_cost == 50
    assert stat.roi == 0.5
    assert stat.upload_count == 1

    channel_stats = db.query(ScriptChannelStat).filter_by(script_id=script.id).all()
    assert len(channel_stats) == 1
    assert channel_stats[0].channel == "抖音"
    assert channel_stats[0].matched_rows == 1
    assert channel_stats[0].total_cost == 100
    assert channel_stats[0].customer_cost == 50
    assert channel_stats[0].roi == 0.5


def test_summary_rows_and_placeholder_channels_are_excluded(db, make_script, make_upload):
    script = make_script("威塔课程")
    make_upload("2024-W01", [
        {"material_name": "威塔课程", "total_cost": 100, "channel": "抖音"},
        {"material_name": "威塔课程", "total_cost": 40, "channel": "-"},
        {"material_name": "合计", "total_cost": 9999, "channel": "抖音"},
    ])

    StatsProcessor(db).recompute_all()

    stat = db.query(ScriptStat).filter_by(script_id=script.id).one()
    assert stat.matched_rows == 2
    assert stat.total_cost == 140

    channels = {c.channel: c for c in db.query(ScriptChannelStat).all()}
    assert list(channels) == ["抖音"]
    assert channels["抖音"].total_cost == 100

    period = db.query(ChannelPeriodStat).one()
    assert period.channel == "抖音"
    assert period.total_cost == 100


def test_content_types_are_read_from_system_config(db, make_script, make_upload):
    script = make_script("威原塔威玉通")
    make_upload("2024-W01", [{"material_name": "素材前缀六字威原塔威玉通3D", "total_cost": 10}])

    StatsProcessor(db).recompute_all()
    assert db.query(ScriptStat).filter_by(script_id=script.id).first() is None

    db.add(SystemConfig(key=CONTENT_TYPES_KEY, value=json.dumps(["3D"])))
    db.commit()

    StatsProcessor(db).recompute_all()
    assert db.query(ScriptStat).filter_by(script_id=script.id).one().total_cost == 10


# ---------------------------------------------------------------------------
# Full-replace semantics
# ---------------------------------------------------------------------------

def test_recompute_is_idempotent(db, make_script, make_upload):
    make_script("威塔课程")
    make_script("玉通课程")
    make_upload("2024-W01", [
        {"material_name": "威塔课程", "total_cost": 100, "customers": 4, "click_rate": 0.2, "channel": "抖音"},
        {"material_name": "玉通课程", "total_cost": 30, "channel": "快手"},
    ])
    make_upload("2024-W02", [
        {"material_name": "威塔课程改2", "total_cost": 60, "customers": 1, "channel": "快手"},
    ])

    processor = StatsProcessor(db)
    processor.recompute_all()
    first = _snapshot(db)
    processor.recompute_all()
    second = _snapshot(db)

    assert first == second
    assert len(first[0]) == 2
    assert len(first[1]) == 3
    assert len(first[2]) == 3


def test_unmatched_script_stats_are_removed(db, make_script, make_upload):
    script = make_script("威塔课程")
    upload = make_upload("2024-W01", [{"material_name": "威塔课程", "total_cost": 100, "channel": "抖音"}])

    StatsProcessor(db).recompute_all()
    assert db.query(ScriptStat).filter_by(script_id=script.id).count() == 1

    db.delete(db.get(ExcelUpload, upload.id))
    db.commit()

    result = StatsProcessor(db).recompute_all()

    assert result["script_stats"]["cleared"] == 1
    assert db.query(ScriptStat).filter_by(script_id=script.id).count() == 0
    assert db.query(ScriptChannelStat).filter_by(script_id=script.id).count() == 0
    assert db.query(ChannelPeriodStat).count() == 0


def test_stale_channels_are_pruned(db, make_script, make_upload):
    script = make_script("威塔课程")
    first = make_upload("2024-W01", [{"material_name": "威塔课程", "total_cost": 100, "channel": "抖音"}])
    make_upload("2024-W02", [{"material_name": "威塔课程", "total_cost": 50, "channel": "快手"}])

    StatsProcessor(db).recompute_all()
    assert {c.channel for c in db.query(ScriptChannelStat).all()} == {"抖音", "快手"}

    db.delete(db.get(ExcelUpload, first.id))
    db.commit()
    StatsProcessor(db).recompute_all()

    channels = db.query(ScriptChannelStat).filter_by(script_id=script.id).all()
    assert [c.channel for c in channels] == ["快手"]
    assert db.query(ScriptStat).filter_by(script_id=script.id).one().total_cost == 50


def test_one_row_counts_for_every_matching_script(db, make_script, make_upload):
    long_name = make_script("威塔课程")
    short_name = make_script("威塔")
    make_upload("2024-W01", [{"material_name": "威塔课程", "total_cost": 100}])

    StatsProcessor(db).recompute_all()

    assert db.query(ScriptStat).filter_by(script_id=long_name.id).one().total_cost == 100
    assert db.query(ScriptStat).filter_by(script_id=short_name.id).one().total_cost == 100


# ---------------------------------------------------------------------------
# Channel x period pass
# ---------------------------------------------------------------------------

def test_channel_period_stats_ignore_script_matching(db, make_upload):
    upload = make_upload("2024-W01", [
        {"material_name": "无人认领的素材", "total_cost": 10, "channel": "抖音"},
        {"material_name": "另一个素材", "total_cost": 20, "channel": "抖音"},
        {"material_name": "第三个素材", "total_cost": 5, "channel": "快手"},
    ])

    result = StatsProcessor(db).recalculate_channel_period_stats()

    assert result["created"] == 2
    stats = {s.channel: s for s in db.query(ChannelPeriodStat).all()}
    assert stats["抖音"].total_cost == 30
    assert stats["抖音"].matched_rows == 2
    assert stats["快手"].total_cost == 5
    assert all(s.upload_id == upload.id and s.period == "2024-W01" for s in stats.values())


# ---------------------------------------------------------------------------
# Background entry point
# ---------------------------------------------------------------------------

def test_run_stats_recompute_uses_its_own_session(db, make_script, make_upload):
    script = make_script("威塔课程")
    make_upload("2024-W01", [{"material_name": "威塔课程", "total_cost": 100, "channel": "抖音"}])

    result = run_stats_recompute()

    assert result["script_stats"]["upserted"] == 1
    db.expire_all()
    assert db.query(ScriptStat).filter_by(script_id=script.id).count() == 1


def test_run_stats_recompute_channel_only(db, make_script, make_upload):
    make_script("威塔课程")
    make_upload("2024-W01", [{"material_name": "威塔课程", "total_cost": 100, "channel": "抖音"}])

    result = run_stats_recompute(channel_only=True)

    assert result["created"] == 1
    db.expire_all()
    assert db.query(ScriptStat).count() == 0
    assert db.query(ChannelPeriodStat).count() == 1


def test_run_stats_recompute_swallows_failures(monkeypatch, session_factory):
    def boom(self):
        raise RuntimeError("storage unavailable")

    monkeypatch.setattr(StatsProcessor, "recompute_all", boom)
    assert run_stats_recompute() is None
