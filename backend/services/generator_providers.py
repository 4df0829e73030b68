from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

import openai

from core.config import get_openai_client
from services.errors import GeneratorError, QuotaExceeded, RateLimited, TransientError

logger = logging.getLogger(__name__)

GENERATION_SYSTEM_PROMPT = (
    "You are a BPMN expert that generates detailed, valid BPMN 2.0 XML diagrams "
    "with multiple tasks, decision points, and realistic process flows."
)

OPTIMIZATION_SYSTEM_PROMPT = (
    "You are a process optimization expert. Always respond with valid JSON."
)

GENERATION_PROMPT = """You are a BPMN expert. Generate a comprehensive and detailed BPMN 2.0 XML diagram based on the process description.

IMPORTANT REQUIREMENTS:
1. Always start with a start event and end with an end event
2. Create multiple detailed tasks for each major step mentioned in the description
3. Include decision gateways where appropriate (exclusive, parallel, inclusive)
4. Add intermediate events where needed (message, timer, error events)
5. Use proper BPMN elements with meaningful names and IDs
6. Create realistic process flows with proper sequence flows
7. Include lanes/pools if multiple actors are involved
8. Add annotations or text annotations for clarity
9. Ensure the process has at least 5-10 activities for realistic complexity
10. Return only valid BPMN 2.0 XML with a single bpmn:definitions root and exactly one bpmn:process, no explanations

Process Description: {description}
Industry Context: {industry}

Generate a detailed BPMN XML with multiple tasks, decision points, and proper flow logic:"""

OPTIMIZATION_PROMPT = """You are a process optimization expert. Analyze the current BPMN process and suggest improvements.

Current Process: {currentBpmn}
Industry: {industry}
Optimization Context: {context}

Provide:
1. Optimized BPMN XML
2. List of specific changes made
3. Brief summary of improvements

Format your response as JSON:
{
  "bpmnXml": "optimized BPMN XML here",
  "changes": ["change 1", "change 2", ...],
  "summary": "brief summary of improvements"
}"""

SYSTEM_PROMPTS = {
    GENERATION_PROMPT: GENERATION_SYSTEM_PROMPT,
    OPTIMIZATION_PROMPT: OPTIMIZATION_SYSTEM_PROMPT,
}

_FENCE_RE = re.compile(r"```(?:\w+)?\s*(.*?)```", re.DOTALL)
_XML_RE = re.compile(
    r"<(?:[\w.-]+:)?definitions\b.*</(?:[\w.-]+:)?definitions\s*>", re.DOTALL
)


class Generator(Protocol):
    name: str

    def complete(self, prompt_template: str, variables: Mapping[str, Any]) -> str:
        ...

    def describe(self) -> Dict[str, Any]:
        ...


def render_prompt(template: str, variables: Mapping[str, Any]) -> str:
    """Substitute {name} placeholders literally; other braces are left alone."""
    rendered = template
    for key, value in variables.items():
        if not isinstance(value, str):
            value = json.dumps(value, ensure_ascii=False)
        rendered = rendered.replace("{" + key + "}", value)
    return rendered


def _strip_fences(raw: str) -> str:
    match = _FENCE_RE.search(raw)
    return match.group(1).strip() if match else raw.strip()


def extract_bpmn_xml(raw: str) -> str:
    match = _XML_RE.search(_strip_fences(raw or ""))
    if not match:
        raise TransientError("Generator response contains no BPMN definitions")
    return match.group(0)


def extract_json_object(raw: str) -> Dict[str, Any]:
    cleaned = _strip_fences(raw or "")
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        raise TransientError("Generator response contains no JSON object")
    try:
        parsed = json.loads(cleaned[start : end + 1])
    except json.JSONDecodeError as exc:
        raise TransientError(f"Invalid JSON returned by generator: {exc}") from exc
    if not isinstance(parsed, dict):
        raise TransientError("Generator returned non-object JSON payload")
    return parsed


def _retry_after(exc: openai.APIStatusError) -> Optional[float]:
    response = getattr(exc, "response", None)
    raw = response.headers.get("retry-after") if response is not None else None
    try:
        return float(raw) if raw is not None else None
    except ValueError:
        return None


def _is_quota_error(exc: openai.APIStatusError) -> bool:
    code = (getattr(exc, "code", None) or "").lower()
    return code == "insufficient_quota" or "quota" in str(exc).lower()


def translate_error(exc: Exception) -> GeneratorError:
    """Map SDK exceptions onto RateLimited / QuotaExceeded / TransientError."""
    if isinstance(exc, GeneratorError):
        return exc
    if isinstance(exc, openai.APIStatusError):
        if exc.status_code == 402 or (exc.status_code == 429 and _is_quota_error(exc)):
            return QuotaExceeded(str(exc))
        if exc.status_code == 429:
            return RateLimited(str(exc), retry_after_s=_retry_after(exc))
        return TransientError(f"HTTP {exc.status_code}: {exc}")
    if isinstance(exc, openai.APITimeoutError):
        return TransientError(f"Generator timed out: {exc}")
    if isinstance(exc, openai.APIConnectionError):
        return TransientError(f"Generator unreachable: {exc}")
    return TransientError(str(exc) or exc.__class__.__name__)


class OpenAIGenerator:
    """
    External generator backed by the OpenAI SDK.

    ``api="responses"`` talks to the Responses API; ``api="chat"`` uses chat
    completions so any OpenAI-compatible endpoint can serve as a generator.
    """

    def __init__(
        self,
        name: str,
        client: Any,
        model: str,
        timeout_s: float = 25,
        max_tokens: int = 4000,
        api: str = "responses",
    ):
        self.name = name
        self.model = model
        self.timeout_s = timeout_s or 25
        self.max_tokens = max_tokens or 4000
        self.api = api
        self._base_client = client

    def _client(self):
        try:
            return self._base_client.with_options(timeout=self.timeout_s)
        except AttributeError:  # fakes and older SDKs
            return self._base_client

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "provider": "openai" if self.api == "responses" else "openai-compatible",
            "model": self.model,
            "timeout_s": self.timeout_s,
        }

    def health(self) -> Dict[str, Any]:
        started = time.perf_counter()
        try:
            self._client().models.list()
        except Exception as exc:
            return {
                **self.describe(),
                "ok": False,
                "duration_ms": int((time.perf_counter() - started) * 1000),
                "error": str(translate_error(exc)),
            }
        return {
            **self.describe(),
            "ok": True,
            "duration_ms": int((time.perf_counter() - started) * 1000),
        }

    def _extract_text(self, response) -> str:
        if getattr(response, "output_text", None):
            return response.output_text
        if hasattr(response, "output"):
            parts: List[str] = []
            for item in response.output or []:
                for block in getattr(item, "content", []) or []:
                    text = getattr(block, "text", None)
                    if text:
                        parts.append(text)
            if parts:
                return "".join(parts)
        if hasattr(response, "choices"):
            contents = []
            for choice in getattr(response, "choices", []) or []:
                message = getattr(choice, "message", None)
                if message and getattr(message, "content", None):
                    contents.append(message.content)
            if contents:
                return "".join(contents)
        raise TransientError("Unable to extract text from generator response")

    def _call(self, system_prompt: str, user_prompt: str) -> str:
        client = self._client()
        if self.api == "responses":
            response = client.responses.create(
                model=self.model,
                input=[
                    {"role": "system", "content": [{"type": "input_text", "text": system_prompt}]},
                    {"role": "user", "content": [{"type": "input_text", "text": user_prompt}]},
                ],
                max_output_tokens=self.max_tokens,
            )
        else:
            response = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=self.max_tokens,
                temperature=0.3,
            )
        return self._extract_text(response).strip()

    def complete(self, prompt_template: str, variables: Mapping[str, Any]) -> str:
        system_prompt = SYSTEM_PROMPTS.get(prompt_template, GENERATION_SYSTEM_PROMPT)
        prompt = render_prompt(prompt_template, variables)
        started = time.perf_counter()
        try:
            text = self._call(system_prompt, prompt)
        except Exception as exc:
            raise translate_error(exc) from exc
        if not text:
            raise TransientError(f"{self.name} generator returned an empty response")
        logger.info(
            "%s generator answered in %d ms (%d chars)",
            self.name,
            int((time.perf_counter() - started) * 1000),
            len(text),
        )
        return text


def build_generators(settings) -> Tuple[Optional[OpenAIGenerator], Optional[OpenAIGenerator]]:
    """Create the primary and secondary generators the settings allow."""
    primary = None
    secondary = None

    provider = (settings.primary.provider or "auto").lower()
    if provider in {"openai", "auto"} and settings.primary.api_key:
        primary = OpenAIGenerator(
            "primary",
            get_openai_client(settings.primary.api_key),
            settings.primary.model,
            settings.primary.timeout_s,
            settings.primary.max_tokens,
            api="responses",
        )
    elif provider == "openai":
        logger.error("GENERATOR_PROVIDER=openai but OPENAI_API_KEY is missing")

    if settings.secondary.api_key:
        secondary = OpenAIGenerator(
            "secondary",
            get_openai_client(settings.secondary.api_key, settings.secondary.base_url),
            settings.secondary.model,
            settings.secondary.timeout_s,
            settings.secondary.max_tokens,
            api="chat",
        )

    logger.info(
        "Generators configured: primary=%s secondary=%s",
        primary.model if primary else None,
        secondary.model if secondary else None,
    )
    if primary is None and secondary is None:
        logger.warning("No generator API keys configured; only the local pipeline will run")
    return primary, secondary


__all__ = [
    "GENERATION_PROMPT",
    "OPTIMIZATION_PROMPT",
    "Generator",
    "OpenAIGenerator",
    "build_generators",
    "extract_bpmn_xml",
    "extract_json_object",
    "render_prompt",
    "translate_error",
]
