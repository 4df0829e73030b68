from __future__ import annotations

import logging
import re
from typing import Dict

from .errors import StructuralAssessmentError
from .process_model import Complexity, ProcessMetadata

logger = logging.getLogger(__name__)

LOW_MAX_ELEMENTS = 5
MEDIUM_MAX_ELEMENTS = 15

_TAG_PATTERNS = {
    "task": re.compile(r"<(?:[\w.-]+:)?(?:task|\w+Task)\b"),
    "gateway": re.compile(r"<(?:[\w.-]+:)?\w*[Gg]ateway\b"),
    "event": re.compile(r"<(?:[\w.-]+:)?\w*[Ee]vent\b"),
    "flow": re.compile(r"<(?:[\w.-]+:)?sequenceFlow\b"),
    "process": re.compile(r"<(?:[\w.-]+:)?process\b"),
}
_DEFINITIONS_RE = re.compile(r"<(?:[\w.-]+:)?definitions\b")


def count_elements(xml_text: str) -> Dict[str, int]:
    if not isinstance(xml_text, str) or not _DEFINITIONS_RE.search(xml_text):
        raise StructuralAssessmentError("Document has no definitions element")
    return {name: len(pattern.findall(xml_text)) for name, pattern in _TAG_PATTERNS.items()}


def complexity_for_total(total: int) -> Complexity:
    if total <= LOW_MAX_ELEMENTS:
        return Complexity.LOW
    if total <= MEDIUM_MAX_ELEMENTS:
        return Complexity.MEDIUM
    return Complexity.HIGH


def assess(xml_text: str) -> Complexity:
    """Score by task + gateway + event count; unreadable input scores medium."""
    try:
        counts = count_elements(xml_text)
    except StructuralAssessmentError as exc:
        logger.warning("Complexity assessment degraded to medium: %s", exc)
        return Complexity.MEDIUM
    return complexity_for_total(counts["task"] + counts["gateway"] + counts["event"])


def extract_metadata(xml_text: str) -> ProcessMetadata:
    try:
        counts = count_elements(xml_text)
    except StructuralAssessmentError as exc:
        logger.warning("Metadata extraction failed: %s", exc)
        counts = {name: 0 for name in _TAG_PATTERNS}
    return ProcessMetadata(
        task_count=counts["task"],
        gateway_count=counts["gateway"],
        event_count=counts["event"],
        flow_count=counts["flow"],
        process_count=counts["process"],
        complexity=assess(xml_text),
    )


__all__ = ["assess", "complexity_for_total", "count_elements", "extract_metadata"]
