from typing import Any, Dict, List

from pydantic import BaseModel, Field


class GenerateRequest(BaseModel):
    description: str
    title: str
    industry: str = "general"


class GuidedGenerateRequest(BaseModel):
    title: str
    industry: str = "general"
    answers: Dict[str, Any] = Field(default_factory=dict)


class HistoryEntry(BaseModel):
    version: int
    bpmn_xml: str
    changes: List[str] = Field(default_factory=list)
    summary: str = ""
    created_at: str | None = None


class OptimizeRequest(BaseModel):
    bpmn_xml: str
    title: str | None = None
    industry: str = "general"
    answers: Dict[str, Any] = Field(default_factory=dict)
    history: List[HistoryEntry] = Field(default_factory=list)


class ValidateRequest(BaseModel):
    bpmn_xml: str
    title: str | None = None
    industry: str = "general"


class ProcessResponse(BaseModel):
    bpmn_xml: str
    title: str | None = None
    industry: str
    source: str
    metadata: Dict[str, Any]
    issues: list[dict] | None = None
    meta: dict | None = None


class OptimizeResponse(BaseModel):
    version: int
    bpmn_xml: str
    changes: List[str]
    summary: str
    source: str
    metadata: Dict[str, Any]
    history: List[HistoryEntry]
    issues: list[dict] | None = None
    meta: dict | None = None
