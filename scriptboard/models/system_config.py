"""
Admin-editable key/value configuration.

Values are JSON-encoded string lists, e.g. key "blockWords" ->
'["改1", "修"]'. Read fresh at the start of every recompute pass.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text
from datetime import datetime

from scriptboard.models.base import Base


BLOCK_WORDS_KEY = "blockWords"
CONTENT_TYPES_KEY = "contentTypes"
DISABLED_CONTENT_TYPES_KEY = "disabledContentTypes"

LIST_CONFIG_KEYS = (BLOCK_WORDS_KEY, CONTENT_TYPES_KEY, DISABLED_CONTENT_TYPES_KEY)


class SystemConfig(Base):
    __tablename__ = "system_config"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String, unique=True, nullable=False, index=True)
    value = Column(Text, nullable=False, default="[]")
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<SystemConfig {self.key}>"
