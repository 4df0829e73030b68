from services.guided import answers_to_description
from services.task_extractor import extract, phrases


def test_answers_follow_label_order_and_skip_blanks():
    answers = {
        "custom_note": "Keep it short",
        "main_steps": ["Receive claim", "", "approve payout"],
        "process_name": "Claims",
        "participants": "   ",
        "risk_factors": None,
    }

    assert answers_to_description(answers) == (
        "Name: Claims\n"
        "Main Steps: Receive claim, approve payout\n"
        "custom_note: Keep it short"
    )


def test_empty_answers_give_empty_description():
    assert answers_to_description({}) == ""


def test_labels_do_not_become_tasks():
    text = answers_to_description(
        {
            "process_name": "Supplier onboarding",
            "financial_process_type": "Procurement",
            "main_steps": "Collect documents, verify supplier, approve contract",
        }
    )

    assert phrases(extract(text)) == [
        "Collect documents",
        "Verify supplier",
        "Approve contract",
    ]
