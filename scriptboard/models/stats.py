"""
Computed statistics models

All three tables are written exclusively by StatsProcessor and are a pure
function of (scripts, spend rows, match config) as of the last completed
recompute pass. Never edit them by hand.
"""
from sqlalchemy import Column, Integer, String, Float, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import relationship

from scriptboard.models.base import Base


class MetricColumnsMixin:
    """Aggregated metric columns shared by every statistics table."""

    matched_rows = Column(Integer, default=0, nullable=False)

    # Sums (null row values count as 0)
    total_cost = Column(Float, default=0, nullable=False)
    impressions = Column(Float, default=0, nullable=False)
    clicks = Column(Float, default=0, nullable=False)
    customers = Column(Float, default=0, nullable=False)
    low_course_count = Column(Float, default=0, nullable=False)
    low_course_revenue = Column(Float, default=0, nullable=False)
    wechat_followers = Column(Float, default=0, nullable=False)
    activations = Column(Float, default=0, nullable=False)
    additions = Column(Float, default=0, nullable=False)
    group_joins = Column(Float, default=0, nullable=False)
    deep_users = Column(Float, default=0, nullable=False)
    high_course_count = Column(Float, default=0, nullable=False)
    day3_high_course = Column(Float, default=0, nullable=False)
    day4_high_course = Column(Float, default=0, nullable=False)
    day5_high_course = Column(Float, default=0, nullable=False)
    high_course_revenue = Column(Float, default=0, nullable=False)
    refunds = Column(Float, default=0, nullable=False)

    # Averages over non-null row values (null when no row has a value)
    click_rate = Column(Float, nullable=True)
    play_rate_3s = Column(Float, nullable=True)
    play_rate = Column(Float, nullable=True)
    conversion_rate = Column(Float, nullable=True)
    landing_conv_rate = Column(Float, nullable=True)
    wechat_follow_rate = Column(Float, nullable=True)
    activation_rate = Column(Float, nullable=True)
    addition_rate = Column(Float, nullable=True)
    group_join_rate = Column(Float, nullable=True)
    day1_play_rate = Column(Float, nullable=True)
    day2_play_rate = Column(Float, nullable=True)
    day3_play_rate = Column(Float, nullable=True)
    day4_play_rate = Column(Float, nullable=True)
    day5_play_rate = Column(Float, nullable=True)
    deep_rate = Column(Float, nullable=True)
    day3_deep_play_rate = Column(Float, nullable=True)
    day3_deep_conv_rate = Column(Float, nullable=True)
    high_course_pay_rate = Column(Float, nullable=True)
    refund_rate = Column(Float, nullable=True)

    # Derived ratios, computed from the sums (null on zero denominator)
    customer_cost = Column(Float, nullable=True)        # total_cost / customers
    avg_impression_cost = Column(Float, nullable=True)  # total_cost / impressions
    avg_click_cost = Column(Float, nullable=True)       # total_cost / clicks
    activation_cost = Column(Float, nullable=True)      # total_cost / activations
    addition_cost = Column(Float, nullable=True)        # total_cost / additions
    roi = Column(Float, nullable=True)                  # high_course_revenue / total_cost


class ScriptStat(MetricColumnsMixin, Base):
    """Whole-script aggregate, one row per script (upserted)."""
    __tablename__ = "script_stats"

    id = Column(Integer, primary_key=True, index=True)
    script_id = Column(Integer, ForeignKey("scripts.id", ondelete="CASCADE"), unique=True, nullable=False)
    upload_count = Column(Integer, default=0)  # periods on file when computed

    script = relationship("Script", back_populates="stat")

    def __repr__(self):
        return f"<ScriptStat script={self.script_id} rows={self.matched_rows} roi={self.roi}>"


class ScriptChannelStat(MetricColumnsMixin, Base):
    """Per (script, channel) aggregate for channels observed in matched rows."""
    __tablename__ = "script_channel_stats"

    id = Column(Integer, primary_key=True, index=True)
    script_id = Column(Integer, ForeignKey("scripts.id", ondelete="CASCADE"), nullable=False)
    channel = Column(String, nullable=False)

    script = relationship("Script", back_populates="channel_stats")

    __table_args__ = (
        UniqueConstraint("script_id", "channel", name="uq_script_channel"),
        Index("ix_script_channel_stats_channel", "channel"),
    )

    def __repr__(self):
        return f"<ScriptChannelStat script={self.script_id} channel={self.channel}>"


class ChannelPeriodStat(MetricColumnsMixin, Base):
    """Per (channel, upload) aggregate, computed without script matching."""
    __tablename__ = "channel_period_stats"

    id = Column(Integer, primary_key=True, index=True)
    upload_id = Column(Integer, ForeignKey("excel_uploads.id", ondelete="CASCADE"), nullable=False)
    period = Column(String, nullable=False)
    channel = Column(String, nullable=False)

    upload = relationship("ExcelUpload", back_populates="channel_stats")

    __table_args__ = (
        UniqueConstraint("upload_id", "channel", name="uq_channel_period"),
        Index("ix_channel_period_stats_channel", "channel"),
    )

    def __repr__(self):
        return f"<ChannelPeriodStat {self.period} {self.channel}>"
