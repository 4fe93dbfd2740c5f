"""
Script matcher tests.

Covers the structural slice (tier 1), the substring fallback with its
digit boundary (tier 2), and loading the match config from system_config.
"""
import json

from scriptboard.models.system_config import SystemConfig, BLOCK_WORDS_KEY, CONTENT_TYPES_KEY
from scriptboard.services.script_matcher import (
    MatchConfig,
    contains_with_boundary,
    load_match_config,
    match_script_name,
    prepare_material,
    structural_key,
)


# ---------------------------------------------------------------------------
# Empty inputs
# ---------------------------------------------------------------------------

def test_empty_inputs_never_match():
    assert match_script_name("", "威塔课程") is False
    assert match_script_name("威塔课程", "") is False
    assert match_script_name(None, "威塔课程") is False


# ---------------------------------------------------------------------------
# Tier 2: substring with digit boundary
# ---------------------------------------------------------------------------

def test_digit_after_match_rejects():
    assert match_script_name("脚本330投放", "脚本3") is False


def test_non_digit_after_match_accepts():
    assert match_script_name("脚本3投放", "脚本3") is True


def test_match_at_end_of_name_accepts():
    assert match_script_name("投放脚本3", "脚本3") is True


def test_boundary_checks_first_occurrence_only():
    """The first hit is followed by a digit, so a later clean hit is not considered."""
    assert contains_with_boundary("脚本30脚本3", "脚本3") is False


def test_absent_script_name_rejects():
    assert match_script_name("威塔课程", "玉通课程") is False


def test_falls_back_to_raw_name_when_normalized_is_empty():
    material = prepare_material("代理-", MatchConfig())
    assert material.normalized == ""
    assert material.matches("代理") is True


def test_match_uses_normalized_name():
    assert match_script_name("代理-210601威塔课程-WJJ", "威塔课程") is True


def test_block_words_apply_before_matching():
    config = MatchConfig.from_lists(block_words=["0"])
    assert match_script_name("脚本30投放", "脚本3") is False
    assert match_script_name("脚本30投放", "脚本3", config) is True


# ---------------------------------------------------------------------------
# Tier 1: structural slice
# ---------------------------------------------------------------------------

def test_structural_key_strips_prefix_and_content_type():
    assert structural_key("XXXXXX威原塔威玉通课程", ("课程",)) == "威原塔威玉通"


def test_structural_key_longest_suffix_wins():
    assert structural_key("素材前缀六字威塔数学课程", ("课程", "数学课程")) == "威塔"
    assert structural_key("素材前缀六字威塔数学课程", ("数学课程", "课程")) == "威塔"


def test_structural_key_requires_min_length():
    assert structural_key("一二三四五六七", ("七",)) is None


def test_structural_key_none_when_only_suffix_left():
    assert structural_key("一二三四五六课程", ("课程",)) is None


def test_tier_one_exact_match_where_substring_fallback_would_reject():
    """
    "威原塔威玉通" is followed by "3" in the name, which tier 2 rejects;
    stripping the configured "3D" content type makes tier 1 an exact hit.
    """
    name = "素材前缀六字威原塔威玉通3D"
    assert match_script_name(name, "威原塔威玉通") is False
    assert match_script_name(name, "威原塔威玉通", MatchConfig.from_lists(content_types=["3D"])) is True


def test_tier_one_is_equality_not_containment():
    config = MatchConfig.from_lists(content_types=["3D"])
    assert match_script_name("素材前缀六字威原塔威玉通3D", "威原塔", config) is True  # via tier 2
    assert match_script_name("素材前缀六字威原塔9威玉通3D", "威原塔", config) is False


def test_one_material_may_match_several_scripts():
    name = "代理-210601威塔课程-WJJ"
    assert match_script_name(name, "威塔课程") is True
    assert match_script_name(name, "威塔") is True


# ---------------------------------------------------------------------------
# Config loading
# ---------------------------------------------------------------------------

def test_load_match_config_missing_keys_are_empty(db):
    config = load_match_config(db)
    assert config.block_words == ()
    assert config.content_types == ()


def test_load_match_config_reads_lists(db):
    db.add(SystemConfig(key=BLOCK_WORDS_KEY, value=json.dumps(["测试版"], ensure_ascii=False)))
    db.add(SystemConfig(key=CONTENT_TYPES_KEY, value=json.dumps(["课程", ""], ensure_ascii=False)))
    db.commit()

    config = load_match_config(db)
    assert config.block_words == ("测试版",)
    assert config.content_types == ("课程",)


def test_load_match_config_ignores_malformed_json(db):
    db.add(SystemConfig(key=BLOCK_WORDS_KEY, value="not json"))
    db.commit()
    assert load_match_config(db).block_words == ()


def test_load_match_config_ignores_non_list_json(db):
    db.add(SystemConfig(key=CONTENT_TYPES_KEY, value=json.dumps({"课程": 1}, ensure_ascii=False)))
    db.commit()
    assert load_match_config(db).content_types == ()
