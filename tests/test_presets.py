"""Tests for exam presets and component configuration."""
import pytest

from marks_ledger.errors import PreconditionError
from marks_ledger.models import FlatComponent
from marks_ledger.presets import (
    apply_preset, build_persist_payload, custom_preset, flatten_exam_groups, get_preset,
    is_special_optional, require_enabled_full_marks, require_theory_values,
)


def make_component(code, ctype, subject="English", full=None, enabled=False):
    return FlatComponent(
        group_name="COMPULSORY", subject_id=1, subject_name=subject,
        component_code=code, component_type=ctype, full_marks=full, is_enabled=enabled,
    )


def test_is_special_optional():
    assert is_special_optional("Computer Science")
    assert is_special_optional("HOTEL Management")
    assert not is_special_optional("Physics")
    assert not is_special_optional(None)


def test_flatten_exam_groups_keeps_order_and_pads_codes():
    groups = [
        {"name": "COMPULSORY", "subjects": [
            {"id": 1, "name": "English", "components": [
                {"component_code": "31", "component_type": "TH", "full_marks": 75, "is_enabled": True},
                {"component_code": "32", "component_type": "IN"},
            ]},
        ]},
        {"name": "Opt. 1st", "subjects": [
            {"id": 4, "name": "Computer Science", "components": [
                {"component_code": "4271", "component_type": "TH", "full_marks": "50"},
            ]},
        ]},
    ]
    flat = flatten_exam_groups(groups)
    assert [c.component_code for c in flat] == ["0031", "0032", "4271"]
    assert flat[0].full_marks == 75.0
    assert flat[0].is_enabled
    assert flat[1].full_marks is None
    assert flat[2].group_name == "Opt. 1st"
    assert flat[2].full_marks == 50.0


def test_flatten_exam_groups_empty():
    assert flatten_exam_groups([]) == []
    assert flatten_exam_groups([{"name": "X", "subjects": [{"id": 1, "name": "Y"}]}]) == []


def test_apply_first_terminal():
    components = [
        make_component("0031", "TH"),
        make_component("0032", "IN", full=25, enabled=True),
        make_component("4271", "TH", subject="Computer Science"),
    ]
    out = apply_preset(components, get_preset("FIRST_TERMINAL"))
    assert out[0].full_marks == 50
    assert out[0].is_enabled
    assert out[1].full_marks == 25
    assert not out[1].is_enabled
    assert out[2].full_marks == 17.5
    assert out[2].is_enabled


def test_apply_pre_board_enables_internals():
    components = [make_component("0032", "IN"), make_component("1012", "PR", subject="Physics")]
    out = apply_preset(components, get_preset("PRE_BOARD"))
    assert all(c.is_enabled for c in out)
    assert [c.full_marks for c in out] == [25, 25]


def test_apply_preset_does_not_mutate_input():
    components = [make_component("0031", "TH")]
    apply_preset(components, get_preset("SECOND_TERMINAL"))
    assert components[0].full_marks is None
    assert not components[0].is_enabled


def test_apply_preset_unset_internal_keeps_current_full():
    preset = custom_preset(60, 40, enable_internal=True, internal_full="")
    out = apply_preset([make_component("0032", "IN", full=20)], preset)
    assert out[0].full_marks == 20
    assert out[0].is_enabled


def test_apply_preset_passes_unknown_types_through():
    comp = make_component("0099", "XX", full=10, enabled=True)
    out = apply_preset([comp], get_preset("FIRST_TERMINAL"))
    assert out[0] == comp


def test_get_preset_unknown():
    with pytest.raises(PreconditionError, match="Unknown preset"):
        get_preset("FINAL")


def test_custom_preset_parses_typed_values():
    preset = custom_preset("60", " 40 ", True, "abc")
    assert preset.key == "CUSTOM"
    assert preset.th_full == 60.0
    assert preset.optional_full == 40.0
    assert preset.internal_full is None


def test_require_theory_values():
    require_theory_values(get_preset("FIRST_TERMINAL"))
    with pytest.raises(PreconditionError, match="Full marks and optional full marks are required"):
        require_theory_values(get_preset("CUSTOM"))
    with pytest.raises(PreconditionError):
        require_theory_values(custom_preset("60", ""))


def test_require_enabled_full_marks():
    require_enabled_full_marks([make_component("0031", "TH", full=50, enabled=True)])
    require_enabled_full_marks([make_component("0032", "IN", enabled=False)])
    with pytest.raises(PreconditionError, match="Full marks required"):
        require_enabled_full_marks([make_component("0032", "IN", enabled=True)])


def test_build_persist_payload_skips_missing_full_marks():
    components = [
        make_component("0031", "TH", full=50, enabled=True),
        make_component("0032", "IN", full=None, enabled=True),
        make_component("0042", "IN", full=25, enabled=False),
        make_component("0041", "TH", full=float("nan"), enabled=True),
    ]
    payload = build_persist_payload(components)
    assert [(u.component_code, u.full_marks, u.is_enabled) for u in payload] == [
        ("0031", 50.0, True),
        ("0042", 25.0, False),
    ]
