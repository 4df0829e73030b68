from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from schemas.optimization import validate_optimization_payload
from services.bpmn_svc import generate_bpmn_from_tasks
from services.bpmn_validator import validate
from services.complexity import extract_metadata
from services.errors import (
    GenerationCancelled,
    InputError,
    QuotaExceeded,
    TransientError,
    ValidationError,
)
from services.generator_providers import (
    GENERATION_PROMPT,
    OPTIMIZATION_PROMPT,
    Generator,
    build_generators,
    extract_bpmn_xml,
    extract_json_object,
    translate_error,
)
from services.guided import answers_to_description
from services.lexicon_loader import ExtractionRules
from services.process_model import (
    Industry,
    OptimizationHistory,
    OptimizationRecord,
    OptimizationResult,
    ProcessDescription,
    ProcessDocument,
    issue,
)
from services.task_extractor import extract

logger = logging.getLogger(__name__)

DESCRIPTION_LIMITS = (10, 5000)
TITLE_LIMITS = (3, 200)

NOOP_CHANGES = (
    "Added error handling paths",
    "Optimized task sequence",
    "Improved process flow",
)
NOOP_SUMMARY = "Basic optimization applied to improve process efficiency"


class GenerationState(str, Enum):
    TRY_PRIMARY = "try_primary"
    TRY_SECONDARY = "try_secondary"
    FALLBACK = "fallback"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class GenerationConfig:
    """Everything the orchestrator needs; built once and shared read-only."""

    primary: Optional[Generator] = None
    secondary: Optional[Generator] = None
    max_attempts: int = 3
    base_delay_s: float = 1.0
    sleep: Callable[[float], None] = time.sleep
    rules: Optional[ExtractionRules] = None

    @classmethod
    def from_settings(cls, settings) -> "GenerationConfig":
        primary, secondary = build_generators(settings)
        return cls(
            primary=primary,
            secondary=secondary,
            max_attempts=max(1, settings.retry.max_attempts),
            base_delay_s=max(0.0, settings.retry.base_delay_s),
        )


@dataclass
class _Run:
    mode: str
    call: Callable[[Generator], Any]
    fallback: Callable[[], Any]
    cancel: Optional[threading.Event] = None
    state: GenerationState = GenerationState.TRY_PRIMARY
    trail: List[GenerationState] = field(default_factory=list)
    attempts: int = 0
    payload: Any = None
    source: str = ""
    issues: List[Dict[str, Any]] = field(default_factory=list)
    started: float = field(default_factory=time.perf_counter)

    def meta(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "source": self.source,
            "attempts": self.attempts,
            "states": [state.value for state in self.trail],
            "duration_ms": int((time.perf_counter() - self.started) * 1000),
        }


def _industry(value: Union[Industry, str, None]) -> Industry:
    if isinstance(value, Industry):
        return value
    try:
        return Industry(str(value or "general").strip().lower())
    except ValueError:
        allowed = ", ".join(item.value for item in Industry)
        raise InputError(f"industry must be one of: {allowed}")


def _require_length(field_name: str, value: Any, limits: tuple) -> str:
    low, high = limits
    if not isinstance(value, str) or not value.strip():
        raise InputError(f"{field_name} is required")
    length = len(value.strip())
    if length < low or length > high:
        raise InputError(
            f"{field_name} must be between {low} and {high} characters (got {length})"
        )
    return value.strip()


class GenerationOrchestrator:
    """
    Runs a request through primary generator -> secondary generator -> local
    pipeline, then validates and scores whatever came out.

    Rate limits are the only retried failure. The local pipeline cannot fail,
    so a document is always produced unless the upstream XML is invalid or
    the caller cancels.
    """

    def __init__(self, config: GenerationConfig):
        self.config = config

    # ---------- state machine ----------
    def _after_primary(self) -> GenerationState:
        if self.config.secondary is not None:
            return GenerationState.TRY_SECONDARY
        return GenerationState.FALLBACK

    def _wait(self, run: _Run, delay: float) -> None:
        if run.cancel is not None:
            if run.cancel.wait(delay):
                raise GenerationCancelled("Request cancelled during backoff")
            return
        self.config.sleep(delay)

    def _try_primary(self, run: _Run) -> GenerationState:
        generator = self.config.primary
        if generator is None:
            return self._after_primary()

        run.attempts += 1
        try:
            run.payload = run.call(generator)
        except Exception as exc:
            error = translate_error(exc)
            if error.retryable:
                if run.attempts < self.config.max_attempts:
                    delay = self.config.base_delay_s * 2 ** (run.attempts - 1)
                    logger.warning(
                        "Primary generator failed with retryable %s (attempt %d/%d, retry-after=%s); retrying in %.2fs",
                        type(error).__name__,
                        run.attempts,
                        self.config.max_attempts,
                        getattr(error, "retry_after_s", None),
                        delay,
                    )
                    self._wait(run, delay)
                    return GenerationState.TRY_PRIMARY
                logger.warning(
                    "Primary generator still failing (%s) after %d attempts",
                    type(error).__name__,
                    run.attempts,
                )
                run.issues.append(
                    issue(
                        "PROVIDER_RATE_LIMITED",
                        f"Primary generator rate limited after {run.attempts} attempts.",
                    )
                )
                return self._after_primary()
            self._record_failure(run, "primary", error)
            return GenerationState.FALLBACK

        run.source = "primary"
        return GenerationState.DONE

    def _try_secondary(self, run: _Run) -> GenerationState:
        generator = self.config.secondary
        if generator is None:
            return GenerationState.FALLBACK
        try:
            run.payload = run.call(generator)
        except Exception as exc:
            self._record_failure(run, "secondary", translate_error(exc))
            return GenerationState.FALLBACK
        run.source = "secondary"
        return GenerationState.DONE

    def _fallback(self, run: _Run) -> GenerationState:
        run.payload = run.fallback()
        run.source = "fallback"
        return GenerationState.DONE

    def _record_failure(self, run: _Run, stage: str, error: Exception) -> None:
        if isinstance(error, QuotaExceeded):
            logger.error("%s generator quota exceeded: %s", stage.capitalize(), error)
            run.issues.append(
                issue("QUOTA_EXCEEDED", f"{stage.capitalize()} generator quota exceeded.", "error")
            )
            return
        logger.warning("%s generator failed: %s", stage.capitalize(), error)
        run.issues.append(
            issue("PROVIDER_ERROR", f"{stage.capitalize()} generator failed: {error}")
        )

    def _drive(self, run: _Run, finish: Callable[[_Run], Any]) -> Any:
        handlers = {
            GenerationState.TRY_PRIMARY: self._try_primary,
            GenerationState.TRY_SECONDARY: self._try_secondary,
            GenerationState.FALLBACK: self._fallback,
        }
        failure: Optional[Exception] = None
        while run.state not in (GenerationState.DONE, GenerationState.FAILED):
            run.trail.append(run.state)
            try:
                if run.cancel is not None and run.cancel.is_set():
                    raise GenerationCancelled("Request cancelled")
                run.state = handlers[run.state](run)
            except GenerationCancelled as exc:
                failure = exc
                run.state = GenerationState.FAILED

        if run.state is GenerationState.DONE:
            run.trail.append(GenerationState.DONE)
            try:
                return finish(run)
            except ValidationError as exc:
                logger.error("Document from %s failed validation: %s", run.source, exc)
                failure = exc
                run.state = GenerationState.FAILED

        run.trail.append(GenerationState.FAILED)
        raise failure

    # ---------- generation ----------
    def _generate(
        self,
        request: ProcessDescription,
        title: str,
        cancel: Optional[threading.Event],
        mode: str,
    ) -> ProcessDocument:
        description, industry = request.text, request.industry
        variables = {"description": description, "industry": industry.value}

        def call(generator: Generator) -> str:
            return extract_bpmn_xml(generator.complete(GENERATION_PROMPT, variables))

        def fallback() -> str:
            tasks = extract(description, self.config.rules, industry)
            return generate_bpmn_from_tasks(tasks, title)

        def finish(run: _Run) -> ProcessDocument:
            xml = validate(run.payload, structural=True, require_path=run.source == "fallback")
            metadata = extract_metadata(xml)
            logger.info(
                "Generated %s process via %s: %d tasks, %d gateways, complexity=%s",
                mode,
                run.source,
                metadata.task_count,
                metadata.gateway_count,
                metadata.complexity.value,
            )
            return ProcessDocument(
                xml=xml,
                metadata=metadata,
                title=title,
                industry=industry,
                source=run.source,
                issues=list(run.issues),
                meta=run.meta(),
            )

        run = _Run(mode=mode, call=call, fallback=fallback, cancel=cancel)
        return self._drive(run, finish)

    def generate(
        self,
        description: str,
        title: str,
        industry: Union[Industry, str] = Industry.GENERAL,
        cancel: Optional[threading.Event] = None,
    ) -> ProcessDocument:
        description = _require_length("description", description, DESCRIPTION_LIMITS)
        title = _require_length("title", title, TITLE_LIMITS)
        request = ProcessDescription(text=description, industry=_industry(industry))
        return self._generate(request, title, cancel, "text")

    def generate_guided(
        self,
        title: str,
        industry: Union[Industry, str],
        answers: Mapping[str, Any],
        cancel: Optional[threading.Event] = None,
    ) -> ProcessDocument:
        title = _require_length("title", title, TITLE_LIMITS)
        if not isinstance(answers, Mapping):
            raise InputError("answers must be an object")
        description = answers_to_description(answers)
        request = ProcessDescription(text=description, industry=_industry(industry))
        return self._generate(request, title, cancel, "guided")

    # ---------- optimization ----------
    def optimize(
        self,
        document: Union[ProcessDocument, str],
        industry: Union[Industry, str],
        answers: Mapping[str, Any],
        history: Union[OptimizationHistory, Sequence[OptimizationRecord]] = (),
        cancel: Optional[threading.Event] = None,
    ) -> OptimizationResult:
        """
        Ask the generators to improve an existing document and append the
        outcome to the history as version len(history) + 1.

        When every generator fails the existing XML is kept and the record
        lists generic improvements instead of raising.
        """
        industry = _industry(industry)
        if not isinstance(answers, Mapping):
            raise InputError("answers must be an object")
        if not isinstance(history, OptimizationHistory):
            history = OptimizationHistory.of(history)
        versions = [record.version for record in history.records]
        if versions != list(range(1, len(versions) + 1)):
            raise InputError(
                f"history versions must run 1..{len(versions)} without gaps, got {versions}"
            )
        existing =document.xml if isinstance(document, ProcessDocument) else document
        existing_xml = validate(existing, structural=True)
        title = document.title if isinstance(document, ProcessDocument) else None
        variables = {
            "currentBpmn": existing_xml,
            "industry": industry.value,
            "context": dict(answers),
        }

        def call(generator: Generator) -> Dict[str, Any]:
            payload = extract_json_object(generator.complete(OPTIMIZATION_PROMPT, variables))
            try:
                validate_optimization_payload(payload)
            except ValueError as exc:
                raise TransientError(str(exc)) from exc
            return {**payload, "bpmnXml": extract_bpmn_xml(payload["bpmnXml"])}

        def fallback() -> Dict[str, Any]:
            return {
                "bpmnXml": existing_xml,
                "changes": list(NOOP_CHANGES),
                "summary": NOOP_SUMMARY,
            }

        def finish(run: _Run) -> OptimizationResult:
            xml = validate(run.payload["bpmnXml"], structural=True)
            changes = [str(change) for change in run.payload.get("changes") or []]
            summary = str(run.payload.get("summary") or "")
            optimized = ProcessDocument(
                xml=xml,
                metadata=extract_metadata(xml),
                title=title,
                industry=industry,
                source=run.source,
                issues=list(run.issues),
                meta=run.meta(),
            )
            new_history = history.append(changes, optimized, summary)
            logger.info(
                "Optimization version %d produced via %s (%d changes)",
                new_history.latest.version,
                run.source,
                len(changes),
            )
            return OptimizationResult(
                record=new_history.latest,
                history=new_history,
                summary=summary,
                source=run.source,
                issues=list(run.issues),
                meta=run.meta(),
            )

        run = _Run(mode="optimize", call=call, fallback=fallback, cancel=cancel)
        return self._drive(run, finish)

    # ---------- misc ----------
    def validate_document(
        self,
        xml_text: str,
        title: Optional[str] = None,
        industry: Union[Industry, str] = Industry.GENERAL,
    ) -> ProcessDocument:
        xml = validate(xml_text, structural=True)
        return ProcessDocument(
            xml=xml,
            metadata=extract_metadata(xml),
            title=title,
            industry=_industry(industry),
            source="caller",
        )

    def status(self, probe: bool = False) -> Dict[str, Any]:
        def _describe(generator: Optional[Generator]) -> Optional[Dict[str, Any]]:
            if generator is None:
                return None
            health = getattr(generator, "health", None)
            if probe and callable(health):
                return health()
            return generator.describe()

        return {
            "primary": _describe(self.config.primary),
            "secondary": _describe(self.config.secondary),
            "fallback": "local",
            "max_attempts": self.config.max_attempts,
            "base_delay_s": self.config.base_delay_s,
        }


__all__ = [
    "GenerationConfig",
    "GenerationOrchestrator",
    "GenerationState",
    "NOOP_CHANGES",
    "NOOP_SUMMARY",
]
