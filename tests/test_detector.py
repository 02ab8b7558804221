from __future__ import annotations

import pytest

from tools.detector import (
    MARKER_OPEN,
    MarkerStatus,
    detect_calls,
    partial_open_suffix,
    scan_marker,
    strip_calls,
    visible_text,
)

SCENARIO = (
    'Sure! [TOOL_CALL: get_training_status] Let\'s check. '
    '[TOOL_CALL: plan_workout(date: "today", workout_json: "{\\"title\\":\\"Row\\"}")]'
)


def test_scenario_two_calls() -> None:
    calls = detect_calls(SCENARIO)

    assert [c.name for c in calls] == ["get_training_status", "plan_workout"]
    assert calls[0].parameters == {}
    assert calls[0].raw_parameters is None
    assert calls[1].parameters == {"date": "today", "workout_json": {"title": "Row"}}
    assert calls[1].parameter_errors == {}
    for c in calls:
        assert SCENARIO[c.start:c.end] == c.raw_text
        assert c.raw_text.startswith(MARKER_OPEN) and c.raw_text.endswith("]")

    assert visible_text(SCENARIO, calls) == "Sure!  Let's check. "


def test_no_markers() -> None:
    assert detect_calls("Just chatting, [not a call] (really).") == []


def test_malformed_marker_does_not_hide_later_ones() -> None:
    text = "[TOOL_CALL: ] odd [TOOL_CALL: bad name] then [TOOL_CALL: get_health_data] done"
    calls = detect_calls(text)
    assert [c.name for c in calls] == ["get_health_data"]


def test_unclosed_group_is_skipped() -> None:
    text = "[TOOL_CALL: plan_workout(date: today and later [TOOL_CALL: get_workout]"
    calls = detect_calls(text)
    assert [c.name for c in calls] == ["get_workout"]
    assert visible_text(text, calls) == ""


def test_parentheses_and_brackets_inside_values() -> None:
    text = (
        '[TOOL_CALL: plan_workout(workout_json: "{\\"title\\": \\"Row (easy) ]\\"}")] '
        "[TOOL_CALL: log_set_result(exercise: Row, notes: (easy))]"
    )
    calls = detect_calls(text)

    assert [c.name for c in calls] == ["plan_workout", "log_set_result"]
    assert calls[0].parameters["workout_json"] == {"title": "Row (easy) ]"}
    assert calls[1].parameters == {"exercise": "Row", "notes": "(easy)"}
    assert strip_calls(text, calls) == " "


def test_unbalanced_quote_falls_back_to_close_paren_bracket() -> None:
    text = 'Logged. [TOOL_CALL: log_set_result(exercise: "Row, reps: 5)] Next.'
    calls = detect_calls(text)

    assert len(calls) == 1
    assert calls[0].raw_parameters == 'exercise: "Row, reps: 5'
    assert visible_text(text, calls) == "Logged.  Next."


@pytest.mark.parametrize(
    "text",
    [
        "A [TOOL_CALL: a(x: 1) then B [TOOL_CALL: b(y: 2)] C",
        'A [TOOL_CALL: a(x: "y) more [TOOL_CALL: b] C',
    ],
)
def test_broken_marker_before_a_call_is_not_shown(text: str) -> None:
    calls = detect_calls(text)

    assert [c.name for c in calls] == ["b"]
    assert visible_text(text, calls) == "A  C"


def test_invalid_opener_stays_as_prose_between_calls() -> None:
    text = "[TOOL_CALL: get_workout] x [TOOL_CALL: !] y [TOOL_CALL: get_health_data] z"
    calls = detect_calls(text)

    assert [c.name for c in calls] == ["get_workout", "get_health_data"]
    assert visible_text(text, calls) == " x [TOOL_CALL: !] y  z"


def test_whitespace_inside_envelope() -> None:
    calls = detect_calls("[TOOL_CALL:get_workout (date: tomorrow) ]")
    assert len(calls) == 1
    assert calls[0].name == "get_workout"
    assert calls[0].parameters == {"date": "tomorrow"}


def test_detection_is_deterministic() -> None:
    assert detect_calls(SCENARIO) == detect_calls(SCENARIO)


def test_removal_matches_manual_removal_for_many_markers() -> None:
    pieces = ["Intro. ", " a ", "", " b, c ", "\n", " end."]
    markers = [
        "[TOOL_CALL: get_health_data]",
        "[TOOL_CALL: get_workout(date: today)]",
        '[TOOL_CALL: plan_workout(date: "2024-05-01", workout_json: "{\\"exercises\\": [{\\"kind\\": \\"row\\"}]}")]',
        "[TOOL_CALL: log_set_result(exercise: \"Squat, back\", set: 1, reps: 5, load_lb: 225)]",
        "[TOOL_CALL: get_training_status()]",
    ]
    text = pieces[0] + "".join(m + p for m, p in zip(markers, pieces[1:]))

    calls = detect_calls(text)
    out = visible_text(text, calls)

    assert [c.raw_text for c in calls] == markers
    assert out == "".join(pieces)
    assert MARKER_OPEN not in out
    assert len(out) == len(text) - sum(len(m) for m in markers)


def test_truncated_trailing_marker_is_cut_from_visible_text() -> None:
    text = "Planning now [TOOL_CALL: plan_workout(date: tod"
    assert detect_calls(text) == []
    assert visible_text(text, []) == "Planning now "


def test_scan_marker_statuses() -> None:
    assert scan_marker("[TOOL_CALL: get_he", 0, final=False).status is MarkerStatus.INCOMPLETE
    assert scan_marker("[TOOL_CALL: get_he", 0, final=True).status is MarkerStatus.TRUNCATED
    assert scan_marker("[TOOL_CALL: get_workout(date: x)", 0, final=False).status is MarkerStatus.INCOMPLETE
    assert scan_marker("[TOOL_CALL: !", 0, final=False).status is MarkerStatus.INVALID
    assert scan_marker("[TOOL_CALL: a b]", 0).status is MarkerStatus.INVALID

    scan = scan_marker("xx[TOOL_CALL: get_workout(date: x)]yy", 2)
    assert scan.status is MarkerStatus.COMPLETE
    assert (scan.start, scan.end) == (2, 35)
    assert scan.raw_parameters == "date: x"


def test_partial_open_suffix() -> None:
    assert partial_open_suffix("hello [TOOL") == 5
    assert partial_open_suffix("hello [") == 1
    assert partial_open_suffix("hello") == 0
    assert partial_open_suffix("") == 0
