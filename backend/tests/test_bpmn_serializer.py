from xml.etree import ElementTree as ET

from services.bpmn_svc import NS, generate_bpmn_from_tasks, serialize
from services.bpmn_validator import validate
from services.graph_builder import build_graph
from services.layout import layout


def _local(tag: str) -> str:
    return tag.split("}")[-1]


def _count(root, local_name: str) -> int:
    return sum(1 for el in root.iter() if _local(el.tag) == local_name)


def test_serialization_is_deterministic():
    tasks = ["Verify payment", "Check inventory", "Ship the product", "Send confirmation"]

    first = generate_bpmn_from_tasks(tasks, "Order Handling")
    second = generate_bpmn_from_tasks(list(tasks), "Order Handling")

    assert first == second


def test_document_structure_and_di():
    graph = build_graph(["Receive Order", "Approve Order"])
    xml = serialize(graph, layout(graph), "Orders")
    root = ET.fromstring(xml.encode("utf-8"))

    assert xml.startswith("<?xml")
    assert root.tag == f"{{{NS['bpmn']}}}definitions"
    assert root.get("id") == "Definitions_1"
    process = root.find("bpmn:process", NS)
    assert process.get("id") == "Process_1"
    assert process.get("name") == "Orders"
    assert _count(root, "sequenceFlow") == len(graph.flows)
    assert _count(root, "BPMNShape") == len(graph.nodes)
    assert _count(root, "BPMNEdge") == len(graph.flows)

    task = process.find("bpmn:task[@id='Task_1']", NS)
    assert task.find("bpmn:incoming", NS).text == "Flow_1"
    assert task.find("bpmn:outgoing", NS).text == "Flow_2"

    shape = root.find(".//bpmndi:BPMNShape[@bpmnElement='Gateway_2']", NS)
    assert shape.get("isMarkerVisible") == "true"
    bounds = shape.find("dc:Bounds", NS)
    assert bounds.get("width") == "50"
    waypoints = root.findall(".//bpmndi:BPMNEdge[@bpmnElement='Flow_1']/di:waypoint", NS)
    assert [(w.get("x"), w.get("y")) for w in waypoints] == [("198", "100"), ("370", "100")]


def test_special_characters_survive_a_round_trip():
    name = "Check O'Brien's <fragile> & \"urgent\" items"
    xml = generate_bpmn_from_tasks([name], "R&D <pilot>")
    root = ET.fromstring(xml.encode("utf-8"))

    assert root.find(".//bpmn:task[@id='Task_1']", NS).get("name") == name
    assert root.find("bpmn:process", NS).get("name") == "R&D <pilot>"
    assert "&amp;" in xml and "&lt;fragile&gt;" in xml
    assert "O&#39;Brien&#39;s" in xml
    assert "'" not in xml


def test_control_characters_are_dropped():
    xml = generate_bpmn_from_tasks(["Pack\x00 goods\x1f"])
    root = ET.fromstring(xml.encode("utf-8"))

    assert root.find(".//bpmn:task[@id='Task_1']", NS).get("name") == "Pack goods"


def test_default_process_name_and_path_validity():
    xml = generate_bpmn_from_tasks(["Verify payment", "Send confirmation"])
    root = ET.fromstring(xml.encode("utf-8"))

    assert root.find("bpmn:process", NS).get("name") == "Generated Process"
    assert validate(xml, structural=True, require_path=True)


def test_lone_surrogates_are_dropped():
    xml = generate_bpmn_from_tasks(["Verify \ud800payment\udfff"], "Orders\udc00")
    root = ET.fromstring(xml.encode("utf-8"))

    assert root.find(".//bpmn:task[@id='Task_1']", NS).get("name") == "Verify payment"
    assert root.find("bpmn:process", NS).get("name") == "Orders"
    assert validate(xml, structural=True, require_path=True)
