from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Sequence, Tuple

NodeKind = Literal["startEvent", "task", "exclusiveGateway", "endEvent"]
Point = Tuple[int, int]


class Industry(str, Enum):
    GENERAL = "general"
    MANUFACTURING = "manufacturing"
    HEALTHCARE = "healthcare"
    FINANCE = "finance"


class Complexity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class ProcessDescription:
    text: str
    industry: Industry = Industry.GENERAL


@dataclass(frozen=True)
class ExtractedTask:
    phrase: str


@dataclass(frozen=True)
class ProcessNode:
    id: str
    kind: NodeKind
    name: str
    incoming: Optional[str] = None
    outgoing: Optional[str] = None


@dataclass(frozen=True)
class SequenceFlow:
    id: str
    source_ref: str
    target_ref: str


@dataclass(frozen=True)
class ProcessGraph:
    nodes: List[ProcessNode]
    flows: List[SequenceFlow]

    def node(self, node_id: str) -> ProcessNode:
        for node in self.nodes:
            if node.id == node_id:
                return node
        raise KeyError(node_id)


@dataclass(frozen=True)
class Bounds:
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width


@dataclass(frozen=True)
class ShapeLayout:
    element_id: str
    bounds: Bounds
    is_marker_visible: bool = False


@dataclass(frozen=True)
class EdgeLayout:
    flow_id: str
    waypoints: List[Point]


@dataclass(frozen=True)
class DiagramLayout:
    shapes: Dict[str, ShapeLayout]
    edges: Dict[str, EdgeLayout]


@dataclass(frozen=True)
class ProcessMetadata:
    task_count: int
    gateway_count: int
    event_count: int
    flow_count: int
    process_count: int
    complexity: Complexity

    def as_dict(self) -> Dict[str, Any]:
        return {
            "taskCount": self.task_count,
            "gatewayCount": self.gateway_count,
            "eventCount": self.event_count,
            "flowCount": self.flow_count,
            "processCount": self.process_count,
            "complexity": self.complexity.value,
        }


@dataclass(frozen=True)
class ProcessDocument:
    xml: str
    metadata: ProcessMetadata
    title: Optional[str] = None
    industry: Industry = Industry.GENERAL
    source: str = "fallback"
    issues: List[Dict[str, Any]] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OptimizationRecord:
    version: int
    changes: Tuple[str, ...]
    document: ProcessDocument
    summary: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class OptimizationHistory:
    """Append-only list of optimization records; appending returns a new history."""

    records: Tuple[OptimizationRecord, ...] = ()

    @classmethod
    def of(cls, records: Sequence[OptimizationRecord]) -> "OptimizationHistory":
        return cls(tuple(records))

    @property
    def next_version(self) -> int:
        return len(self.records) + 1

    def append(
        self, changes: Sequence[str], document: ProcessDocument, summary: str = ""
    ) -> "OptimizationHistory":
        record = OptimizationRecord(
            version=self.next_version,
            changes=tuple(changes),
            document=document,
            summary=summary,
        )
        return OptimizationHistory(self.records + (record,))

    @property
    def latest(self) -> Optional[OptimizationRecord]:
        return self.records[-1] if self.records else None

    def __len__(self) -> int:
        return len(self.records)


@dataclass(frozen=True)
class OptimizationResult:
    record: OptimizationRecord
    history: OptimizationHistory
    summary: str
    source: str
    issues: List[Dict[str, Any]] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)


def issue(code: str, message: str, severity: str = "warning") -> Dict[str, Any]:
    return {"code": code, "message": message, "severity": severity}
