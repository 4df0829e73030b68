from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from collections import Counter
from typing import Dict, List

from .errors import ValidationError

logger = logging.getLogger(__name__)

REQUIRED_ELEMENTS = ("definitions", "process", "startEvent", "endEvent")

_OPEN_DEFINITIONS_RE = re.compile(r"<(?:[\w.-]+:)?definitions\b")
_CLOSE_DEFINITIONS_RE = re.compile(r"</(?:[\w.-]+:)?definitions\s*>")
_BLANK_LINES_RE = re.compile(r"\n\s*\n")


def _local(tag: str) -> str:
    return tag.split("}", 1)[-1] if "}" in tag else tag


def clean_xml(xml_text: str) -> str:
    """Trim, normalize line endings and collapse blank lines."""
    text = xml_text.strip().replace("\r\n", "\n").replace("\r", "\n")
    return _BLANK_LINES_RE.sub("\n", text).strip()


def _check_markup(xml_text: object) -> str:
    if not isinstance(xml_text, str) or not xml_text.strip():
        raise ValidationError("Invalid BPMN XML: must be a non-empty string")
    if not _OPEN_DEFINITIONS_RE.search(xml_text):
        raise ValidationError(
            "Invalid BPMN XML: missing definitions element", missing=["definitions"]
        )
    if not _CLOSE_DEFINITIONS_RE.search(xml_text):
        raise ValidationError("Invalid BPMN XML: malformed XML structure")
    return xml_text


def _parse(xml_text: str) -> ET.Element:
    try:
        return ET.fromstring(xml_text.strip().encode("utf-8"))
    except (ET.ParseError, UnicodeEncodeError) as exc:
        raise ValidationError(f"Invalid BPMN XML: {exc}") from exc


def _process_element(root: ET.Element) -> ET.Element:
    if _local(root.tag) != "definitions":
        raise ValidationError(
            f"Invalid BPMN XML: root element is <{_local(root.tag)}>, expected <definitions>"
        )
    processes = [child for child in root if _local(child.tag) == "process"]
    if len(processes) != 1:
        raise ValidationError(
            f"Invalid BPMN XML: expected exactly one process, found {len(processes)}",
            missing=["process"] if not processes else [],
        )
    return processes[0]


def _check_required(root: ET.Element) -> None:
    present = {_local(el.tag) for el in root.iter()}
    missing = [name for name in REQUIRED_ELEMENTS if name not in present]
    if missing:
        raise ValidationError(
            f"BPMN validation failed: missing required elements: {', '.join(missing)}",
            missing=missing,
        )


def path_violations(process: ET.Element) -> List[str]:
    """Return the ways the process deviates from a single start-to-end path."""
    nodes: Dict[str, str] = {}
    indeg: Counter[str] = Counter()
    outdeg: Counter[str] = Counter()
    for child in process:
        tag = _local(child.tag)
        if tag == "sequenceFlow":
            outdeg[child.get("sourceRef") or ""] += 1
            indeg[child.get("targetRef") or ""] += 1
        elif child.get("id") and tag not in {"laneSet", "textAnnotation", "association"}:
            nodes[child.get("id")] = tag

    problems: List[str] = []
    starts = [nid for nid, tag in nodes.items() if tag == "startEvent"]
    ends = [nid for nid, tag in nodes.items() if tag == "endEvent"]
    if len(starts) != 1:
        problems.append(f"expected one start event, found {len(starts)}")
    if len(ends) != 1:
        problems.append(f"expected one end event, found {len(ends)}")

    for nid, tag in nodes.items():
        expected_in = 0 if tag == "startEvent" else 1
        expected_out = 0 if tag == "endEvent" else 1
        if indeg[nid] != expected_in or outdeg[nid] != expected_out:
            problems.append(
                f"{tag} '{nid}' has indeg={indeg[nid]}, outdeg={outdeg[nid]}"
            )
    for ref in set(indeg) | set(outdeg):
        if ref not in nodes:
            problems.append(f"sequence flow references unknown element '{ref}'")
    return problems


def validate(xml_text: str, structural: bool = True, require_path: bool = False) -> str:
    """
    Check a BPMN document and return its cleaned form.

    The string checks (non-empty, definitions open/close tags) always run.
    ``structural`` parses the document and requires a single definitions root
    with exactly one process and the definitions/process/startEvent/endEvent
    elements. ``require_path`` also demands a single start-to-end path.
    Raises ValidationError naming what is missing; never repairs input.
    """
    _check_markup(xml_text)
    cleaned = clean_xml(xml_text)
    if structural or require_path:
        root = _parse(cleaned)
        process = _process_element(root)
        _check_required(root)
        if require_path:
            problems = path_violations(process)
            if problems:
                raise ValidationError(
                    "BPMN validation failed: not a single path: " + "; ".join(problems)
                )
    return cleaned


__all__ = ["REQUIRED_ELEMENTS", "clean_xml", "path_violations", "validate"]
