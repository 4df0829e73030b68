from __future__ import annotations

from typing import Any, List, Mapping

# Questionnaire keys in the order they are written into the description.
# Labels avoid action verbs so the local extractor does not read them as tasks.
ANSWER_LABELS = {
    "process_name": "Name",
    "process_purpose": "Purpose",
    "process_trigger": "Trigger",
    "main_steps": "Main Steps",
    "decision_points": "Decision Points",
    "participants": "Participants",
    "systems_used": "Systems Used",
    "documents_data": "Documents/Data",
    "process_output": "Expected Output",
    "success_criteria": "Success Criteria",
    # manufacturing
    "production_type": "Production Type",
    "quality_checkpoints": "Quality Checkpoints",
    "equipment_dependencies": "Equipment Dependencies",
    "safety_requirements": "Safety Requirements",
    # healthcare
    "care_type": "Care Type",
    "patient_safety": "Patient Safety",
    "clinical_protocols": "Clinical Protocols",
    "healthcare_providers": "Healthcare Providers",
    # finance
    "financial_process_type": "Financial Workflow Type",
    "regulatory_requirements": "Regulatory Requirements",
    "approval_levels": "Approval Levels",
    "risk_factors": "Risk Factors",
}


def _answer_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(item).strip() for item in value if str(item).strip())
    return str(value).strip()


def answers_to_description(answers: Mapping[str, Any]) -> str:
    """Flatten questionnaire answers into "Label: value" lines, skipping blanks."""
    lines: List[str] = []
    for key, label in ANSWER_LABELS.items():
        text = _answer_text(answers.get(key))
        if text:
            lines.append(f"{label}: {text}")
    for key, value in answers.items():
        if key in ANSWER_LABELS:
            continue
        text = _answer_text(value)
        if text:
            lines.append(f"{key}: {text}")
    return "\n".join(lines)


__all__ = ["ANSWER_LABELS", "answers_to_description"]
