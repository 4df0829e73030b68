import pytest

from services.bpmn_svc import generate_bpmn_from_tasks
from services.bpmn_validator import clean_xml, validate
from services.errors import ValidationError

MINIMAL = """<?xml version="1.0" encoding="UTF-8"?>
<bpmn:definitions xmlns:bpmn="http://www.omg.org/spec/BPMN/20100524/MODEL" id="D1">
  <bpmn:process id="P1">
    <bpmn:startEvent id="S" />
    <bpmn:task id="T" />
    <bpmn:endEvent id="E" />
    <bpmn:sequenceFlow id="F1" sourceRef="S" targetRef="T" />
    <bpmn:sequenceFlow id="F2" sourceRef="T" targetRef="E" />
  </bpmn:process>
</bpmn:definitions>"""


def test_validate_returns_cleaned_text():
    messy = "\r\n\r\n" + MINIMAL.replace("\n", "\r\n\r\n") + "\n\n"

    cleaned = validate(messy)

    assert "\r" not in cleaned
    assert "\n\n" not in cleaned
    assert cleaned.startswith("<?xml")


def test_validate_is_idempotent():
    once = validate(generate_bpmn_from_tasks(["Verify payment"]))
    assert validate(once) == once
    assert clean_xml(once) == once


@pytest.mark.parametrize("value", ["", "   ", None, 17])
def test_empty_or_non_string_is_rejected(value):
    with pytest.raises(ValidationError):
        validate(value)


def test_missing_definitions_is_named():
    with pytest.raises(ValidationError) as info:
        validate("<process id='P'/>")
    assert info.value.missing == ["definitions"]


def test_unclosed_definitions_is_rejected():
    with pytest.raises(ValidationError, match="malformed"):
        validate("<bpmn:definitions xmlns:bpmn='x'><bpmn:process/>", structural=False)


def test_missing_end_event_is_named():
    xml = MINIMAL.replace('<bpmn:endEvent id="E" />', "")

    with pytest.raises(ValidationError) as info:
        validate(xml)
    assert info.value.missing == ["endEvent"]


def test_two_processes_are_rejected():
    xml = MINIMAL.replace(
        "</bpmn:definitions>", '<bpmn:process id="P2" /></bpmn:definitions>'
    )
    with pytest.raises(ValidationError, match="exactly one process"):
        validate(xml)


def test_broken_markup_fails_structural_check_only():
    xml = MINIMAL.replace('<bpmn:task id="T" />', '<bpmn:task id="T">')

    assert validate(xml, structural=False)
    with pytest.raises(ValidationError):
        validate(xml)


def test_branching_process_fails_path_check():
    xml = MINIMAL.replace(
        "</bpmn:process>",
        '<bpmn:sequenceFlow id="F3" sourceRef="S" targetRef="E" /></bpmn:process>',
    )

    assert validate(xml)
    with pytest.raises(ValidationError, match="single path"):
        validate(xml, require_path=True)


def test_unencodable_characters_are_a_validation_error():
    xml = MINIMAL.replace('<bpmn:task id="T" />', '<bpmn:task id="T" name="\ud800" />')

    with pytest.raises(ValidationError):
        validate(xml)
