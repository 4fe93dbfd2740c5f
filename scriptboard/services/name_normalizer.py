"""
Material name normalizer

Upload material names accumulate operational noise: agency and repair
prefixes, date stamps, operator initials, revision counters, file
extensions. clean_material_name() strips it in a fixed order; each step
works on the output of the previous one, so the order must not change.

    "代理-210601威塔课程-WJJ"      -> "威塔课程"
    "一键修复_240301脚本A改2.mp4"  -> "脚本A"
"""
import re
from typing import Iterable

_MEDIA_EXTENSION_RE = re.compile(r"\.(?:mp4|mov|avi|mkv)$", re.IGNORECASE)
_AGENCY_PREFIX = "代理-"
_REPAIR_PREFIX = "一键修复_"
_OPERATOR_INITIALS_RE = re.compile(r"-[A-Z]{2,5}$")
_DATE_STAMP_RE = re.compile(r"^[0-9]{5,6}")

_REVISION_NUMBER = r"[0-9一二三四五六七八九十]+"
_REVISION_MARKER_RE = re.compile(rf"改{_REVISION_NUMBER}|{_REVISION_NUMBER}改")

_CJK = r"㐀-䶿一-鿿"
_NON_CJK_PREFIX_RE = re.compile(rf"^[^{_CJK}]+(?=[{_CJK}])")


def clean_material_name(material_name: str, block_words: Iterable[str] = ()) -> str:
    """
    Reduce a raw material name to its canonical form.

    Total and pure: never raises, never lengthens the input. A name with
    nothing to strip comes back trimmed and otherwise unchanged.
    """
    if not material_name:
        return ""

    name = material_name.strip()
    name = _MEDIA_EXTENSION_RE.sub("", name)

    if name.startswith(_AGENCY_PREFIX):
        name = name[len(_AGENCY_PREFIX):]
    if name.startswith(_REPAIR_PREFIX):
        name = name[len(_REPAIR_PREFIX):]

    name = _OPERATOR_INITIALS_RE.sub("", name)
    name = _DATE_STAMP_RE.sub("", name)

    for word in block_words:
        if word:
            name = name.replace(word, "")

    name = _REVISION_MARKER_RE.sub("", name)
    name = _NON_CJK_PREFIX_RE.sub("", name)

    return name.strip()
