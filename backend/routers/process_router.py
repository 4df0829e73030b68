import asyncio
import logging
import threading
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Callable, List

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool

from core.settings import get_settings
from schemas.process import (
    GenerateRequest,
    GuidedGenerateRequest,
    HistoryEntry,
    OptimizeRequest,
    OptimizeResponse,
    ProcessResponse,
    ValidateRequest,
)
from services.complexity import extract_metadata
from services.errors import GenerationCancelled, InputError, ValidationError
from services.orchestrator import GenerationConfig, GenerationOrchestrator
from services.process_model import (
    OptimizationHistory,
    OptimizationRecord,
    ProcessDocument,
)

logger = logging.getLogger(__name__)
router = APIRouter()

DISCONNECT_POLL_S = 0.5


@lru_cache
def get_orchestrator() -> GenerationOrchestrator:
    return GenerationOrchestrator(GenerationConfig.from_settings(get_settings()))


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, InputError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(
            status_code=422, detail={"message": str(exc), "missing": exc.missing}
        )
    return HTTPException(status_code=503, detail=str(exc))


def _to_response(document: ProcessDocument) -> ProcessResponse:
    return ProcessResponse(
        bpmn_xml=document.xml,
        title=document.title,
        industry=document.industry.value,
        source=document.source,
        metadata=document.metadata.as_dict(),
        issues=document.issues,
        meta=document.meta,
    )


def _parse_created_at(value: str | None) -> datetime:
    if value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.debug("Ignoring unparsable history timestamp %r", value)
    return datetime.now(timezone.utc)


def _history_from_payload(entries: List[HistoryEntry]) -> OptimizationHistory:
    records = []
    for entry in sorted(entries, key=lambda e: e.version):
        records.append(
            OptimizationRecord(
                version=entry.version,
                changes=tuple(entry.changes),
                document=ProcessDocument(
                    xml=entry.bpmn_xml,
                    metadata=extract_metadata(entry.bpmn_xml),
                    source="history",
                ),
                summary=entry.summary,
                created_at=_parse_created_at(entry.created_at),
            )
        )
    return OptimizationHistory.of(records)


def _history_to_payload(history: OptimizationHistory) -> List[HistoryEntry]:
    return [
        HistoryEntry(
            version=record.version,
            bpmn_xml=record.document.xml,
            changes=list(record.changes),
            summary=record.summary,
            created_at=record.created_at.isoformat(),
        )
        for record in history.records
    ]


async def run_until_disconnect(request: Request, func: Callable[..., Any], *args) -> Any:
    """
    Run a blocking orchestrator call in the threadpool and cancel it once the
    client goes away. The call sees the disconnect at its next state
    transition or backoff wait; an in-flight generator request still runs
    until its own timeout.
    """
    cancel = threading.Event()

    async def _watch() -> None:
        while not cancel.is_set():
            if await request.is_disconnected():
                logger.info("Client disconnected, cancelling %s", request.url.path)
                cancel.set()
                return
            await asyncio.sleep(DISCONNECT_POLL_S)

    watcher = asyncio.ensure_future(_watch())
    try:
        return await run_in_threadpool(func, *args, cancel=cancel)
    finally:
        watcher.cancel()


@router.get("/")
def root():
    return {"message": "BPMN synthesis service is running"}


@router.get("/process/generator/status")
def generator_status(
    probe: bool = False,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    return orchestrator.status(probe=probe)


@router.post("/process/generate", response_model=ProcessResponse)
async def generate_process(
    payload: GenerateRequest,
    request: Request,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> ProcessResponse:
    try:
        document = await run_until_disconnect(
            request, orchestrator.generate, payload.description, payload.title, payload.industry
        )
    except (InputError, ValidationError, GenerationCancelled) as exc:
        raise _http_error(exc)
    return _to_response(document)


@router.post("/process/generate/guided", response_model=ProcessResponse)
async def generate_guided_process(
    payload: GuidedGenerateRequest,
    request: Request,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> ProcessResponse:
    try:
        document = await run_until_disconnect(
            request, orchestrator.generate_guided, payload.title, payload.industry, payload.answers
        )
    except (InputError, ValidationError, GenerationCancelled) as exc:
        raise _http_error(exc)
    return _to_response(document)


@router.post("/process/optimize", response_model=OptimizeResponse)
async def optimize_process(
    payload: OptimizeRequest,
    request: Request,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> OptimizeResponse:
    """
    Improve an existing diagram. The client owns the history and sends it
    back with every call; the response carries the extended history.
    """
    try:
        history = _history_from_payload(payload.history)
        document = orchestrator.validate_document(payload.bpmn_xml, payload.title, payload.industry)
        result = await run_until_disconnect(
            request, orchestrator.optimize, document, payload.industry, payload.answers, history
        )
    except (InputError, ValidationError, GenerationCancelled) as exc:
        raise _http_error(exc)
    record = result.record
    return OptimizeResponse(
        version=record.version,
        bpmn_xml=record.document.xml,
        changes=list(record.changes),
        summary=result.summary,
        source=result.source,
        metadata=record.document.metadata.as_dict(),
        history=_history_to_payload(result.history),
        issues=result.issues,
        meta=result.meta,
    )


@router.post("/process/validate", response_model=ProcessResponse)
def validate_process(
    payload: ValidateRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> ProcessResponse:
    try:
        document = orchestrator.validate_document(payload.bpmn_xml, payload.title, payload.industry)
    except (InputError, ValidationError) as exc:
        raise _http_error(exc)
    return _to_response(document)
