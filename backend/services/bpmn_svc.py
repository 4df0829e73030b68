# bpmn_svc.py
# Graph + layout -> BPMN 2.0 XML. All user text passes through _clean_text and
# is written as ElementTree attributes, so escaping happens in one place.

import re
import xml.etree.ElementTree as ET
from typing import Iterable, Optional

from services.graph_builder import TaskLike, build_graph
from services.layout import layout as build_layout
from services.process_model import DiagramLayout, ProcessGraph

# -------------------------------
# Namespaces and helpers
# -------------------------------
NS = {
    "bpmn": "http://www.omg.org/spec/BPMN/20100524/MODEL",
    "bpmndi": "http://www.omg.org/spec/BPMN/20100524/DI",
    "dc": "http://www.omg.org/spec/DD/20100524/DC",
    "di": "http://www.omg.org/spec/DD/20100524/DI",
}
for _prefix, _uri in NS.items():
    ET.register_namespace(_prefix, _uri)

TARGET_NS = "http://bpmn.io/schema/bpmn"
DEFINITIONS_ID = "Definitions_1"
PROCESS_ID = "Process_1"
DEFAULT_PROCESS_NAME = "Generated Process"

# Lone surrogates cannot be encoded; ElementTree would emit them as invalid
# character references.
_ILLEGAL_XML_CHARS = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'


def T(ns: str, local: str) -> str:
    return f"{{{NS[ns]}}}{local}"


def _clean_text(value: Optional[str]) -> str:
    return _ILLEGAL_XML_CHARS.sub("", value or "")


def _xml_to_string(elem: ET.Element) -> str:
    _indent(elem)
    body = ET.tostring(elem, encoding="unicode")
    # ElementTree quotes attributes with " and leaves ' raw.
    return XML_DECLARATION + body.replace("'", "&#39;")


def _indent(elem, level: int = 0):
    i = "\n" + level * "  "
    if len(elem):
        if not elem.text or not elem.text.strip():
            elem.text = i + "  "
        for child in elem:
            _indent(child, level + 1)
        if not child.tail or not child.tail.strip():
            child.tail = i
    if level and (not elem.tail or not elem.tail.strip()):
        elem.tail = i


def _add_process(defs: ET.Element, graph: ProcessGraph, process_name: str) -> None:
    process = ET.SubElement(
        defs,
        T("bpmn", "process"),
        {"id": PROCESS_ID, "name": _clean_text(process_name), "isExecutable": "false"},
    )
    for node in graph.nodes:
        node_el = ET.SubElement(
            process, T("bpmn", node.kind), {"id": node.id, "name": _clean_text(node.name)}
        )
        if node.incoming:
            ET.SubElement(node_el, T("bpmn", "incoming")).text = node.incoming
        if node.outgoing:
            ET.SubElement(node_el, T("bpmn", "outgoing")).text = node.outgoing

    for flow in graph.flows:
        ET.SubElement(
            process,
            T("bpmn", "sequenceFlow"),
            {"id": flow.id, "sourceRef": flow.source_ref, "targetRef": flow.target_ref},
        )


# -------------------------------
# DI (BPMNDiagram) – shapes & edges
# -------------------------------
def _add_di(defs: ET.Element, graph: ProcessGraph, geometry: DiagramLayout) -> None:
    diagram = ET.SubElement(defs, T("bpmndi", "BPMNDiagram"), {"id": "BPMNDiagram_1"})
    plane = ET.SubElement(
        diagram,
        T("bpmndi", "BPMNPlane"),
        {"id": "BPMNPlane_1", "bpmnElement": PROCESS_ID},
    )
    for node in graph.nodes:
        shape = geometry.shapes[node.id]
        attrs = {"id": f"{node.id}_di", "bpmnElement": node.id}
        if shape.is_marker_visible:
            attrs["isMarkerVisible"] = "true"
        shape_el = ET.SubElement(plane, T("bpmndi", "BPMNShape"), attrs)
        ET.SubElement(
            shape_el,
            T("dc", "Bounds"),
            {
                "x": str(shape.bounds.x),
                "y": str(shape.bounds.y),
                "width": str(shape.bounds.width),
                "height": str(shape.bounds.height),
            },
        )

    for flow in graph.flows:
        edge = geometry.edges[flow.id]
        edge_el = ET.SubElement(
            plane,
            T("bpmndi", "BPMNEdge"),
            {"id": f"{flow.id}_di", "bpmnElement": flow.id},
        )
        for x, y in edge.waypoints:
            ET.SubElement(edge_el, T("di", "waypoint"), {"x": str(x), "y": str(y)})


# -------------------------------
# Core: graph -> BPMN XML
# -------------------------------
def serialize(
    graph: ProcessGraph,
    geometry: Optional[DiagramLayout] = None,
    process_name: Optional[str] = None,
) -> str:
    if geometry is None:
        geometry = build_layout(graph)
    defs = ET.Element(
        T("bpmn", "definitions"),
        {"id": DEFINITIONS_ID, "targetNamespace": TARGET_NS},
    )
    _add_process(defs, graph, (process_name or "").strip() or DEFAULT_PROCESS_NAME)
    _add_di(defs, graph, geometry)
    return _xml_to_string(defs)


def generate_bpmn_from_tasks(
    tasks: Iterable[TaskLike], process_name: Optional[str] = None
) -> str:
    graph = build_graph(tasks)
    return serialize(graph, build_layout(graph), process_name)


__all__ = ["NS", "generate_bpmn_from_tasks", "serialize"]
