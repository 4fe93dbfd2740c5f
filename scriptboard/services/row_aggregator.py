"""
Row aggregator

One reduction for every statistics scope: whole script, (script, channel)
and (period, channel) all pass their row subset through aggregate_rows().

- Sums: null counts as 0.
- Averages: mean of the non-null values only; null when there are none.
- Derived ratios: computed once from the sums, null on a zero denominator.
"""
from typing import Any, Dict, Iterable, List, Optional, Sequence

SUM_FIELDS = (
    "total_cost",
    "impressions",
    "clicks",
    "customers",
    "low_course_count",
    "low_course_revenue",
    "wechat_followers",
    "activations",
    "additions",
    "group_joins",
    "deep_users",
    "high_course_count",
    "day3_high_course",
    "day4_high_course",
    "day5_high_course",
    "high_course_revenue",
    "refunds",
)

AVG_FIELDS = (
    "click_rate",
    "play_rate_3s",
    "play_rate",
    "conversion_rate",
    "landing_conv_rate",
    "wechat_follow_rate",
    "activation_rate",
    "addition_rate",
    "group_join_rate",
    "day1_play_rate",
    "day2_play_rate",
    "day3_play_rate",
    "day4_play_rate",
    "day5_play_rate",
    "deep_rate",
    "day3_deep_play_rate",
    "day3_deep_conv_rate",
    "high_course_pay_rate",
    "refund_rate",
)

# derived field -> (numerator, denominator), both taken from the sums
DERIVED_RATIOS = {
    "customer_cost": ("total_cost", "customers"),
    "avg_impression_cost": ("total_cost", "impressions"),
    "avg_click_cost": ("total_cost", "clicks"),
    "activation_cost": ("total_cost", "activations"),
    "addition_cost": ("total_cost", "additions"),
    "roi": ("high_course_revenue", "total_cost"),
}

METRIC_FIELDS = ("matched_rows",) + SUM_FIELDS + AVG_FIELDS + tuple(DERIVED_RATIOS)

SUMMARY_MARKERS = {"合计", "total"}
PLACEHOLDER_CHANNELS = {"", "-", "—", "合计", "total"}


def is_data_row(material_name: Optional[str]) -> bool:
    """False for blank names and summary lines ("合计" / "total")."""
    if material_name is None:
        return False
    name = material_name.strip()
    return name != "" and name.lower() not in SUMMARY_MARKERS


def is_valid_channel(channel: Optional[str]) -> bool:
    """False for missing channels and placeholders such as "-" or "合计"."""
    if channel is None:
        return False
    return channel.strip().lower() not in PLACEHOLDER_CHANNELS


def safe_ratio(numerator: float, denominator: float) -> Optional[float]:
    if not denominator:
        return None
    return numerator / denominator


def _sum(rows: Sequence[Any], field: str) -> float:
    return float(sum(getattr(r, field) or 0 for r in rows))


def _avg(rows: Sequence[Any], field: str) -> Optional[float]:
    values = [getattr(r, field) for r in rows if getattr(r, field) is not None]
    if not values:
        return None
    return float(sum(values)) / len(values)


def aggregate_rows(rows: Iterable[Any]) -> Dict[str, Optional[float]]:
    """
    Reduce a row subset to the full metric set.

    Rows are any objects exposing the SpendRow metric attributes (ORM rows
    or plain namespaces). The caller is responsible for filtering out
    summary rows and placeholder channels beforehand.
    """
    rows = list(rows)
    result: Dict[str, Optional[float]] = {"matched_rows": len(rows)}

    for field in SUM_FIELDS:
        result[field] = _sum(rows, field)

    for field in AVG_FIELDS:
        result[field] = _avg(rows, field)

    for field, (numerator, denominator) in DERIVED_RATIOS.items():
        result[field] = safe_ratio(result[numerator], result[denominator])

    return result


def partition_by_channel(rows: Iterable[Any]) -> Dict[str, List[Any]]:
    """Group rows by channel in first-seen order, dropping placeholder channels."""
    groups: Dict[str, List[Any]] = {}
    for row in rows:
        if not is_valid_channel(row.channel):
            continue
        groups.setdefault(row.channel, []).append(row)
    return groups
