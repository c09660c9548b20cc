import pytest

from classes.model_props import estimate_cost_usd, is_openai_model, parse_model_name
from classes.utils import Utils
from conftest import FakeLlm


@pytest.fixture
def utils():
    return Utils()


def test_load_fault_tolerant_json_strips_code_fences(utils):
    raw = '```json\n{"obvious": "Put shoes by the door", "easy": "5 minutes"}\n```'
    assert utils.load_fault_tolerant_json(raw) == {"obvious": "Put shoes by the door", "easy": "5 minutes"}


def test_load_fault_tolerant_json_ignores_surrounding_prose(utils):
    raw = 'Here is your plan:\n{"satisfying": "Track it on a calendar"}\nGood luck!'
    assert utils.load_fault_tolerant_json(raw) == {"satisfying": "Track it on a calendar"}


def test_load_fault_tolerant_json_repairs_trailing_comma(utils):
    assert utils.load_fault_tolerant_json('{"a": 1, "b": [1, 2,],}') == {"a": 1, "b": [1, 2]}


def test_load_fault_tolerant_json_rejects_non_objects(utils):
    with pytest.raises(ValueError):
        utils.load_fault_tolerant_json("I cannot help with that.")


def test_load_fault_tolerant_json_falls_back_to_llm(utils):
    llm = FakeLlm('{"fixed": true}')
    assert utils.load_fault_tolerant_json("I cannot help with that.", llm=llm) == {"fixed": True}
    assert "I cannot help with that." in llm.calls[0]["prompt"]


def test_coerce_field_to_str(utils):
    assert utils._coerce_field_to_str(None) == "Not specified"
    assert utils._coerce_field_to_str("  ") == "Not specified"
    assert utils._coerce_field_to_str(["reading", " ", "running"]) == "reading, running"
    assert utils._coerce_field_to_str([], default="None specified") == "None specified"
    assert utils._coerce_field_to_str(34) == "34"


def test_unsafe_string_format_keeps_unknown_braces(utils):
    template = 'Habit: {habit_name}\nReturn {"obvious": "..."} for {unknown}'
    out = utils.unsafe_string_format(template, habit_name="Meditate")
    assert out == 'Habit: Meditate\nReturn {"obvious": "..."} for {unknown}'


def test_detect_llm_model_in_payload(utils):
    assert utils._detect_llm_model_in_payload({"model": " gpt-4o "}) == "gpt-4o"
    assert utils._detect_llm_model_in_payload({"llm_model": "gemini-2.5-flash"}) == "gemini-2.5-flash"
    assert utils._detect_llm_model_in_payload({"model": ""}) is None
    assert utils._detect_llm_model_in_payload(None) is None


def test_is_openai_model():
    assert is_openai_model("gpt-4o-mini")
    assert is_openai_model("o3-mini")
    assert not is_openai_model("gemini-2.5-flash-lite")
    assert not is_openai_model(None)


def test_parse_model_name_wildcards_and_tokens():
    assert parse_model_name("gpt-4o-mini") == ("gpt-4o-mini", {})
    base, params = parse_model_name("gpt-5-mini_fast")
    assert base == "gpt-5-mini"
    assert params == {"text": {"verbosity": "low"}, "reasoning": {"effort": "minimal"}}
    with pytest.raises(ValueError):
        parse_model_name("gpt-5-mini_turbo")


def test_estimate_cost_usd():
    assert estimate_cost_usd("gpt-4o-mini", 1_000_000, 1_000_000) == pytest.approx(0.75)
    assert estimate_cost_usd("unknown-model", 1000, 1000) == 0.0
