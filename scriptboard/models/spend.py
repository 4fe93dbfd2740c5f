"""
Spend data models

Every uploaded spreadsheet is one ExcelUpload (a reporting period). Its
lines are stored as SpendRow records, immutable after ingestion and only
removed through deletion of the owning upload.
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime

from scriptboard.models.base import Base


class ExcelUpload(Base):
    """One uploaded spreadsheet = one reporting period."""
    __tablename__ = "excel_uploads"

    id = Column(Integer, primary_key=True, index=True)
    filename = Column(String, nullable=False)
    period = Column(String, nullable=False, index=True)  # e.g. "2024-W23"
    file_path = Column(String, nullable=True)
    row_count = Column(Integer, default=0)

    # Processing status: pending, validating, parsing, matching, done, error
    status = Column(String(20), nullable=False, default="pending", index=True)
    message = Column(Text, nullable=True)
    error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    rows = relationship(
        "SpendRow", back_populates="upload",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    channel_stats = relationship(
        "ChannelPeriodStat", back_populates="upload",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def __repr__(self):
        return f"<ExcelUpload {self.period} {self.filename} [{self.status}]>"


class SpendRow(Base):
    """
    One line of an uploaded period spreadsheet.

    material_name is the free-text label matched against script names.
    Every metric is independently nullable.
    """
    __tablename__ = "spend_rows"

    id = Column(Integer, primary_key=True, index=True)
    upload_id = Column(Integer, ForeignKey("excel_uploads.id", ondelete="CASCADE"), nullable=False)
    row_index = Column(Integer, nullable=False)  # 1-based data row number in the sheet

    material_name = Column(String, nullable=False)
    delivery_date = Column(String, nullable=True)
    channel = Column(String, nullable=True)

    # Additive metrics
    total_cost = Column(Float, nullable=True)
    impressions = Column(Float, nullable=True)
    clicks = Column(Float, nullable=True)
    customers = Column(Float, nullable=True)
    low_course_count = Column(Float, nullable=True)
    low_course_revenue = Column(Float, nullable=True)
    wechat_followers = Column(Float, nullable=True)
    activations = Column(Float, nullable=True)
    additions = Column(Float, nullable=True)
    group_joins = Column(Float, nullable=True)
    deep_users = Column(Float, nullable=True)
    high_course_count = Column(Float, nullable=True)
    day3_high_course = Column(Float, nullable=True)
    day4_high_course = Column(Float, nullable=True)
    day5_high_course = Column(Float, nullable=True)
    high_course_revenue = Column(Float, nullable=True)
    refunds = Column(Float, nullable=True)

    # Rate metrics (averaged across rows)
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

    upload = relationship("ExcelUpload", back_populates="rows")

    __table_args__ = (
        Index("ix_spend_rows_upload", "upload_id"),
        Index("ix_spend_rows_channel", "channel"),
    )

    def __repr__(self):
        return f"<SpendRow {self.upload_id}#{self.row_index} {self.material_name}>"
