from services.graph_builder import build_graph
from services.layout import COLUMN_PITCH, LANE_Y, layout


def test_shapes_are_centred_on_columns():
    graph = build_graph(["Receive Order"])
    geometry = layout(graph)

    start = geometry.shapes["StartEvent_1"].bounds
    task = geometry.shapes["Task_1"].bounds
    end = geometry.shapes["EndEvent_1"].bounds

    assert (start.x, start.y, start.width, start.height) == (162, 82, 36, 36)
    assert (task.x, task.y, task.width, task.height) == (370, 60, 120, 80)
    assert (end.x, end.y) == (662, 82)
    assert task.x + task.width // 2 - (start.x + start.width // 2) == COLUMN_PITCH


def test_gateway_marker_is_visible():
    geometry = layout(build_graph(["Approve budget"]))

    gateway = geometry.shapes["Gateway_1"]
    assert gateway.is_marker_visible
    assert (gateway.bounds.width, gateway.bounds.height) == (50, 50)
    assert not geometry.shapes["Task_1"].is_marker_visible


def test_edges_run_from_source_right_to_target_left():
    graph = build_graph(["Receive Order"])
    geometry = layout(graph)

    assert geometry.edges["Flow_1"].waypoints == [(198, LANE_Y), (370, LANE_Y)]
    assert geometry.edges["Flow_2"].waypoints == [(490, LANE_Y), (662, LANE_Y)]
    assert set(geometry.edges) == {flow.id for flow in graph.flows}
