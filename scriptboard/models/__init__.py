"""Database models for Scriptboard"""

from scriptboard.models.script import Script, Tag, script_tags

from scriptboard.models.spend import ExcelUpload, SpendRow

from scriptboard.models.stats import (
    ScriptStat,
    ScriptChannelStat,
    ChannelPeriodStat,
)

from scriptboard.models.system_config import SystemConfig

__all__ = [
    "Script",
    "Tag",
    "script_tags",
    "ExcelUpload",
    "SpendRow",
    "ScriptStat",
    "ScriptChannelStat",
    "ChannelPeriodStat",
    "SystemConfig",
]
