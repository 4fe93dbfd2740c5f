"""
Bulk script text parser tests.
"""
from scriptboard.services.script_parser import parse_script_text


SAMPLE = """\
=== 第一批 ===
段落—前贴 内容标签—痛点、悬念 脚本名：01威塔课程 内容：开头第一句
第二句
段落—中段 内容标签—干货 脚本名：01威塔课程 内容：中段内容
段落—尾贴 内容标签—促单 脚本名：01威塔课程

段落—前贴 内容标签—悬念 脚本名：玉通课程 内容：另一个脚本
"""


def test_groups_segments_by_script_name():
    result = parse_script_text(SAMPLE)

    assert [s.name for s in result.scripts] == ["威塔课程", "玉通课程"]
    assert result.errors == []


def test_segment_content_and_tags():
    script = parse_script_text(SAMPLE).scripts[0]

    assert script.front_content == "开头第一句\n第二句"
    assert script.mid_content == "中段内容"
    assert script.end_content == ""
    assert script.front_tag_names == ["痛点", "悬念"]
    assert script.mid_tag_names == ["干货"]
    assert script.end_tag_names == ["促单"]


def test_leading_digits_are_stripped_from_names():
    result = parse_script_text("段落—前贴 内容标签—干货 脚本名：210601威塔课程 内容：x")
    assert result.scripts[0].name == "威塔课程"


def test_section_line_resets_context():
    text = "段落—前贴 内容标签—干货 脚本名：威塔课程 内容：x\n=== 第二批 ===\n孤立的一行"
    result = parse_script_text(text)

    assert result.scripts[0].front_content == "x"
    assert len(result.errors) == 1
    assert result.errors[0].line == 3
    assert result.errors[0].content == "孤立的一行"


def test_unattributable_lines_are_reported_with_line_numbers():
    result = parse_script_text("\n开头就是正文\n段落—前贴 内容标签—干货 脚本名：威塔课程")

    assert [e.line for e in result.errors] == [2]
    assert [s.name for s in result.scripts] == ["威塔课程"]


def test_to_dict_shape():
    data = parse_script_text(SAMPLE).to_dict()

    assert set(data) == {"scripts", "errors"}
    assert data["scripts"][1] == {
        "name": "玉通课程",
        "front_content": "另一个脚本",
        "mid_content": "",
        "end_content": "",
        "front_tag_names": ["悬念"],
        "mid_tag_names": [],
        "end_tag_names": [],
    }


def test_empty_text():
    result = parse_script_text("")
    assert result.scripts == []
    assert result.errors == []
