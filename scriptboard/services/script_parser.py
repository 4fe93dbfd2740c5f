"""
Bulk script text parser

Parses the plain-text script export used for bulk import:

    === 第一批 ===
    段落—前贴 内容标签—痛点、悬念 脚本名：01威塔课程 内容：开头第一句
    第二句（续行，归入前贴）
    段落—中段 内容标签—干货 脚本名：01威塔课程 内容：……
    段落—尾贴 内容标签—促单 脚本名：01威塔课程

Leading digits are stripped from script names. Lines that belong to no
segment are reported back as errors instead of being dropped silently.
"""
import re
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional

_LINE_RE = re.compile(
    r"^段落—(前贴|中段|尾贴)\s+内容标签—(.*?)\s+脚本名：(\S+)(?:\s+内容：(.*))?$"
)
_SECTION_RE = re.compile(r"^===")
_LEADING_DIGITS_RE = re.compile(r"^\d+")

SEGMENTS = {"前贴": "front", "中段": "mid", "尾贴": "end"}
TAG_SEPARATOR = "、"


@dataclass
class ParsedScript:
    name: str
    front_content: str = ""
    mid_content: str = ""
    end_content: str = ""
    front_tag_names: List[str] = field(default_factory=list)
    mid_tag_names: List[str] = field(default_factory=list)
    end_tag_names: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class ParseError:
    line: int
    content: str
    reason: str


@dataclass
class ParseResult:
    scripts: List[ParsedScript]
    errors: List[ParseError]

    def to_dict(self) -> Dict:
        return {
            "scripts": [s.to_dict() for s in self.scripts],
            "errors": [asdict(e) for e in self.errors],
        }


def parse_script_text(text: str) -> ParseResult:
    scripts: Dict[str, ParsedScript] = {}
    errors: List[ParseError] = []
    current: Optional[tuple] = None  # (script name, segment)

    for line_no, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()

        if _SECTION_RE.match(line):
            current = None
            continue
        if not line:
            continue

        m = _LINE_RE.match(line)
        if m:
            segment_cn, tag_str, raw_name, content = m.groups()
            segment = SEGMENTS[segment_cn]
            name = _LEADING_DIGITS_RE.sub("", raw_name)
            tags = [t.strip() for t in tag_str.split(TAG_SEPARATOR) if t.strip()]

            script = scripts.setdefault(name, ParsedScript(name=name))
            setattr(script, f"{segment}_content", content or "")
            setattr(script, f"{segment}_tag_names", tags)
            current = (name, segment)
        elif current is not None:
            name, segment = current
            attr = f"{segment}_content"
            script = scripts[name]
            setattr(script, attr, getattr(script, attr) + "\n" + line)
        else:
            errors.append(ParseError(line=line_no, content=line, reason="无法解析，且无所属段落"))

    return ParseResult(scripts=list(scripts.values()), errors=errors)
