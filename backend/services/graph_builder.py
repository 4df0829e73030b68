# services/graph_builder.py
from __future__ import annotations

import re
from typing import Iterable, List, Optional, Sequence, Union

from .process_model import ExtractedTask, ProcessGraph, ProcessNode, SequenceFlow

DECISION_VERBS = ("check", "verify", "review", "approve")
NOTIFY_VERBS = ("complete", "finish", "deliver", "send")

_DECISION_RE = re.compile("|".join(DECISION_VERBS), re.IGNORECASE)

START_ID = "StartEvent_1"
END_ID = "EndEvent_1"

TaskLike = Union[ExtractedTask, str]


def _phrase(task: TaskLike) -> str:
    return task.phrase if isinstance(task, ExtractedTask) else str(task)


def decision_verb(phrase: str) -> Optional[str]:
    """Leftmost decision verb inside the phrase, if any."""
    match = _DECISION_RE.search(phrase)
    return match.group(0) if match else None


def rejection_name(phrase: str) -> str:
    return "Handle " + _DECISION_RE.sub("rejection", phrase, count=1)


def notification_name(phrase: str) -> Optional[str]:
    lowered = phrase.lower()
    if not any(verb in lowered for verb in NOTIFY_VERBS):
        return None
    kind = "delivery" if "deliver" in lowered else "completion"
    return f"Send {kind} notification"


def expand_tasks(tasks: Iterable[TaskLike]) -> List[ProcessNode]:
    """
    Expand task phrases into unconnected nodes, start and end included.

    Decision verbs add a "Decision" gateway followed by a rejection-handling
    task; completion verbs add a notification task. The nodes stay on one
    path, so the rejection branch is named but not forked.
    """
    nodes: List[ProcessNode] = [ProcessNode(START_ID, "startEvent", "Start")]
    for idx, task in enumerate(tasks, start=1):
        phrase = _phrase(task)
        nodes.append(ProcessNode(f"Task_{idx}", "task", phrase))
        if decision_verb(phrase):
            nodes.append(ProcessNode(f"Gateway_{idx}", "exclusiveGateway", "Decision"))
            nodes.append(ProcessNode(f"Task_{idx}_alt", "task", rejection_name(phrase)))
        notify = notification_name(phrase)
        if notify:
            nodes.append(ProcessNode(f"Task_{idx}_notify", "task", notify))
    nodes.append(ProcessNode(END_ID, "endEvent", "End"))
    return nodes


def connect(nodes: Sequence[ProcessNode]) -> ProcessGraph:
    """Thread nodes into a single path: Flow_k joins node k-1 to node k."""
    flows = [
        SequenceFlow(f"Flow_{pos}", nodes[pos - 1].id, nodes[pos].id)
        for pos in range(1, len(nodes))
    ]
    linked: List[ProcessNode] = []
    for pos, node in enumerate(nodes):
        linked.append(
            ProcessNode(
                id=node.id,
                kind=node.kind,
                name=node.name,
                incoming=flows[pos - 1].id if pos > 0 else None,
                outgoing=flows[pos].id if pos < len(flows) else None,
            )
        )
    return ProcessGraph(nodes=linked, flows=flows)


def build_graph(tasks: Iterable[TaskLike]) -> ProcessGraph:
    return connect(expand_tasks(tasks))


__all__ = [
    "build_graph",
    "connect",
    "decision_verb",
    "expand_tasks",
    "notification_name",
    "rejection_name",
]
