import pytest

from services.lexicon_loader import get_extraction_rules, rules_from_lexicon
from services.task_extractor import (
    MAX_TASKS,
    extract,
    is_duplicate,
    normalize_phrase,
    phrases,
)


def test_order_description_yields_ordered_tasks():
    text = (
        "We verify payment, then check inventory, and ship the product. "
        "After that, send confirmation."
    )

    assert phrases(extract(text)) == [
        "Verify payment",
        "Check inventory",
        "Ship the product",
        "Send confirmation",
    ]


@pytest.mark.parametrize("text", ["", "   ", None, 42])
def test_unusable_input_gets_generic_triad(text):
    assert phrases(extract(text)) == [
        "Start Process",
        "Complete Activity",
        "Finish Process",
    ]


@pytest.mark.parametrize(
    "text, expected",
    [
        ("An order arrives from the shop.", ["Receive Order", "Process Order", "Fulfill Order"]),
        ("Each patient waits in the lobby.", ["Register Patient", "Conduct Examination", "Provide Treatment"]),
        ("A loan for a small business.", ["Review Application", "Assess Risk", "Approve Loan"]),
    ],
)
def test_keyword_defaults_when_no_verbs(text, expected):
    assert phrases(extract(text)) == expected


def test_industry_default_when_no_keyword():
    tasks = phrases(extract("Nothing useful here at all.", industry="manufacturing"))
    assert tasks == ["Plan Production", "Manufacture Product", "Inspect Quality"]


def test_task_count_is_capped():
    verbs = [
        "verify", "check", "ship", "send", "receive", "create", "update",
        "validate", "confirm", "approve", "reject", "assign",
    ]
    text = ". ".join(f"{verb} item{idx}" for idx, verb in enumerate(verbs)) + "."

    tasks = phrases(extract(text))

    assert len(tasks) == MAX_TASKS
    assert tasks[0] == "Verify item0"


def test_phrases_are_bounded_and_capitalized():
    text = (
        "We review the extremely detailed quarterly compliance documentation "
        "prepared by the regional audit committee. Then ship it."
    )

    tasks = phrases(extract(text))

    assert tasks
    for phrase in tasks:
        assert 4 <= len(phrase) <= 50
        assert phrase[0].isupper()
    assert tasks[0].endswith("...")


def test_duplicates_are_dropped():
    tasks = phrases(extract("Check inventory levels, check inventory levels again."))
    assert tasks == ["Check inventory levels"]


def test_single_fragment_falls_back_to_sentence_scan():
    tasks = phrases(extract("Operators must approve requests quickly"))
    assert tasks == ["Approve requests quickly"]


def test_normalize_strips_fillers_and_trailing_noun():
    rules = get_extraction_rules()
    assert normalize_phrase("then we must record approval step", rules) == "Record approval"
    assert normalize_phrase("verify the step", rules) == "Verify the step"
    assert normalize_phrase("do", rules) is None


def test_is_duplicate_uses_ten_char_prefix():
    assert is_duplicate("Check inventory", "check inventory twice")
    assert not is_duplicate("Check inventory", "Ship the product")


def test_custom_rules_change_vocabulary():
    rules = rules_from_lexicon(
        {
            "action_verbs": ["brew"],
            "default_tasks": {"generic": ["Idle"]},
        }
    )

    assert phrases(extract("Brew coffee, verify cups.", rules=rules)) == ["Brew coffee"]
    assert phrases(extract("nothing", rules=rules)) == ["Idle"]
