"""
Script library models

A Script is a canonical creative asset. Its name is the target that spend
row material names are matched against. Scripts form a forest through
parent_id: an "iteration" is derived from exactly one parent script.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, Table
from sqlalchemy.orm import relationship
from datetime import datetime

from scriptboard.models.base import Base


script_tags = Table(
    "script_tags",
    Base.metadata,
    Column("script_id", Integer, ForeignKey("scripts.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class Script(Base):
    __tablename__ = "scripts"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, index=True, nullable=False)
    parent_id = Column(Integer, ForeignKey("scripts.id", ondelete="SET NULL"), nullable=True, index=True)

    # Script body, split the way creatives are cut: front / middle / end
    front_content = Column(Text, nullable=True)
    mid_content = Column(Text, nullable=True)
    end_content = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    parent = relationship("Script", remote_side=[id], back_populates="children")
    children = relationship("Script", back_populates="parent")
    tags = relationship("Tag", secondary=script_tags, back_populates="scripts")

    stat = relationship(
        "ScriptStat", back_populates="script", uselist=False,
        cascade="all, delete-orphan", passive_deletes=True,
    )
    channel_stats = relationship(
        "ScriptChannelStat", back_populates="script",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def __repr__(self):
        return f"<Script {self.id}: {self.name}>"


class Tag(Base):
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False, index=True)
    type = Column(String(10), nullable=True)  # front, mid, end

    scripts = relationship("Script", secondary=script_tags, back_populates="tags")

    def __repr__(self):
        return f"<Tag {self.name} [{self.type}]>"
