"""
Script matcher

Decides whether a spend row's material name belongs to a script. Boolean
predicate, evaluated once per (row, script) pair; there is no scoring and
no best-match selection, so one material name may match several scripts.

Two tiers:
  1. Structural slice: the first 6 characters of a normalized name are
     non-discriminating metadata. Drop them, drop a trailing content-type
     suffix, and require exact equality with the script name.
  2. Substring fallback: the script name must occur in the normalized
     name, and the character right after the first occurrence must not be
     a digit ("脚本3" never matches "脚本30").
"""
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from scriptboard.models.system_config import BLOCK_WORDS_KEY, CONTENT_TYPES_KEY
from scriptboard.services.name_normalizer import clean_material_name
from scriptboard.services.system_config_service import get_list_config

STRUCTURAL_MIN_LENGTH = 8
STRUCTURAL_PREFIX_LENGTH = 6

_DIGIT_RE = re.compile(r"[0-9]")


@dataclass(frozen=True)
class MatchConfig:
    """Immutable snapshot of the admin matching configuration for one pass."""
    block_words: Tuple[str, ...] = ()
    content_types: Tuple[str, ...] = ()

    @classmethod
    def from_lists(cls, block_words=None, content_types=None) -> "MatchConfig":
        return cls(
            block_words=tuple(w for w in (block_words or []) if w),
            content_types=tuple(t for t in (content_types or []) if t),
        )


def load_match_config(db: Session) -> MatchConfig:
    """Read blockWords / contentTypes from system_config. Missing keys mean empty lists."""
    return MatchConfig.from_lists(
        block_words=get_list_config(db, BLOCK_WORDS_KEY),
        content_types=get_list_config(db, CONTENT_TYPES_KEY),
    )


def structural_key(normalized: str, content_types: Tuple[str, ...]) -> Optional[str]:
    """
    Tier-1 key of a normalized name: text after the 6-character prefix,
    minus a trailing content-type suffix. None when the name is too short
    or nothing is left.
    """
    if len(normalized) < STRUCTURAL_MIN_LENGTH:
        return None

    tail = normalized[STRUCTURAL_PREFIX_LENGTH:]
    suffix = max(
        (t for t in content_types if t and tail.endswith(t)),
        key=len,
        default="",
    )
    if suffix:
        tail = tail[:-len(suffix)]

    tail = tail.strip()
    return tail or None


def contains_with_boundary(haystack: str, script_name: str) -> bool:
    """Tier-2 check: substring present and not immediately followed by a digit."""
    idx = haystack.find(script_name)
    if idx == -1:
        return False

    after = idx + len(script_name)
    if after < len(haystack) and _DIGIT_RE.match(haystack[after]):
        return False
    return True


@dataclass(frozen=True)
class PreparedMaterial:
    """A material name normalized once per pass, reusable against every script."""
    raw: str
    normalized: str
    structural: Optional[str]

    def matches(self, script_name: str) -> bool:
        if not self.raw or not script_name:
            return False
        if self.structural is not None and self.structural == script_name:
            return True
        return contains_with_boundary(self.normalized or self.raw, script_name)


def prepare_material(material_name: str, config: MatchConfig) -> PreparedMaterial:
    normalized = clean_material_name(material_name or "", config.block_words)
    return PreparedMaterial(
        raw=material_name or "",
        normalized=normalized,
        structural=structural_key(normalized, config.content_types),
    )


def match_script_name(material_name: str, script_name: str, config: Optional[MatchConfig] = None) -> bool:
    """Does this material name belong to this script?"""
    if not material_name or not script_name:
        return False
    return prepare_material(material_name, config or MatchConfig()).matches(script_name)
