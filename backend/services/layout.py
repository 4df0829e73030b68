# services/layout.py
# Draft single-lane layout for the deterministic pipeline; no overlap avoidance.
from __future__ import annotations

from typing import Dict, Tuple

from .process_model import (
    Bounds,
    DiagramLayout,
    EdgeLayout,
    ProcessGraph,
    ShapeLayout,
)

FIRST_COLUMN_X = 180
LANE_Y = 100
COLUMN_PITCH = 250

SHAPE_SIZE: Dict[str, Tuple[int, int]] = {
    "startEvent": (36, 36),
    "endEvent": (36, 36),
    "task": (120, 80),
    "exclusiveGateway": (50, 50),
}


def column_x(position: int) -> int:
    return FIRST_COLUMN_X + position * COLUMN_PITCH


def _centered(center_x: int, center_y: int, kind: str) -> Bounds:
    width, height = SHAPE_SIZE.get(kind, SHAPE_SIZE["task"])
    return Bounds(
        x=center_x - width // 2,
        y=center_y - height // 2,
        width=width,
        height=height,
    )


def layout(graph: ProcessGraph) -> DiagramLayout:
    shapes: Dict[str, ShapeLayout] = {}
    for position, node in enumerate(graph.nodes):
        shapes[node.id] = ShapeLayout(
            element_id=node.id,
            bounds=_centered(column_x(position), LANE_Y, node.kind),
            is_marker_visible=node.kind == "exclusiveGateway",
        )

    edges: Dict[str, EdgeLayout] = {}
    for flow in graph.flows:
        source = shapes[flow.source_ref].bounds
        target = shapes[flow.target_ref].bounds
        edges[flow.id] = EdgeLayout(
            flow_id=flow.id,
            waypoints=[(source.right, LANE_Y), (target.x, LANE_Y)],
        )
    return DiagramLayout(shapes=shapes, edges=edges)


__all__ = ["COLUMN_PITCH", "FIRST_COLUMN_X", "LANE_Y", "layout"]
