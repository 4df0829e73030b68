# services/task_extractor.py
from __future__ import annotations

import logging
import re
import string
from typing import Any, Iterable, List, Optional

from .lexicon_loader import ExtractionRules, get_extraction_rules
from .process_model import ExtractedTask

logger = logging.getLogger(__name__)

MAX_TASKS = 10
MAX_PHRASE_LENGTH = 50
MIN_PHRASE_LENGTH = 4
ELLIPSIS = "..."
DEDUP_PREFIX = 10

SENTENCE_RE = re.compile(r"[.!?\r\n]+")
_EDGE_PUNCT = string.punctuation + "‘’“”"


def _token_key(token: str) -> str:
    return token.strip(_EDGE_PUNCT).lower()


def _fragment_re(rules: ExtractionRules) -> re.Pattern[str]:
    words = "|".join(re.escape(word) for word in rules.separator_words)
    if not words:
        return re.compile(r"[,;:]")
    return re.compile(rf"[,;:]|\s+(?:{words})\s+", re.IGNORECASE)


def _sentence_task_re(rules: ExtractionRules) -> re.Pattern[str]:
    verbs = "|".join(
        re.escape(verb) for verb in sorted(rules.verbs, key=len, reverse=True)
    )
    lead_words = [*rules.fillers, *rules.modifiers]
    lead = "|".join(
        re.escape(word).replace(r"\ ", r"\s+")
        for word in sorted(set(lead_words), key=len, reverse=True)
    )
    lead_part = rf"(?:\b(?:{lead})\s+)*" if lead else ""
    return re.compile(
        rf"{lead_part}\b(?:{verbs})\b\s+[^,.;:!?\s][^,.;:!?]*", re.IGNORECASE
    )


def is_duplicate(first: str, second: str) -> bool:
    """Two phrases are duplicates when either's 10-char prefix occurs in the other."""
    a, b = first.lower(), second.lower()
    return a[:DEDUP_PREFIX] in b or b[:DEDUP_PREFIX] in a


def _add_unique(tasks: List[str], phrase: Optional[str]) -> None:
    if phrase and not any(is_duplicate(existing, phrase) for existing in tasks):
        tasks.append(phrase)


def _strip_fillers(phrase: str, rules: ExtractionRules) -> str:
    changed = True
    while changed and phrase:
        changed = False
        lowered = phrase.lower()
        for filler in rules.fillers:
            if lowered.startswith(filler + " "):
                phrase = phrase[len(filler) :].lstrip()
                changed = True
                break
    return phrase


def _strip_trailing_noun(phrase: str, rules: ExtractionRules) -> str:
    words = phrase.split()
    if (
        len(words) >= 3
        and _token_key(words[-1]) in rules.trailing_nouns
        and _token_key(words[-2]) not in rules.determiners
    ):
        return " ".join(words[:-1])
    return phrase


def normalize_phrase(raw: str, rules: ExtractionRules) -> Optional[str]:
    phrase = " ".join(raw.split()).strip(_EDGE_PUNCT + " ")
    phrase = _strip_fillers(phrase, rules)
    phrase = _strip_trailing_noun(phrase, rules).strip(_EDGE_PUNCT + " ")
    if len(phrase) < MIN_PHRASE_LENGTH:
        return None
    phrase = phrase[0].upper() + phrase[1:]
    if len(phrase) > MAX_PHRASE_LENGTH:
        cut = MAX_PHRASE_LENGTH - len(ELLIPSIS)
        phrase = phrase[:cut].rstrip() + ELLIPSIS
    return phrase


def _phrase_from_fragment(fragment: str, rules: ExtractionRules) -> Optional[str]:
    tokens = fragment.split()
    keys = [_token_key(token) for token in tokens]
    for idx, key in enumerate(keys):
        if key not in rules.verbs:
            continue
        start = idx - 1 if idx > 0 and keys[idx - 1] in rules.modifiers else idx
        end = len(tokens)
        for j in range(idx + 1, len(tokens)):
            if keys[j] in rules.verbs or keys[j] in rules.discourse_markers:
                end = j
                break
        return " ".join(tokens[start:end])
    return None


def _sentences(text: str) -> List[str]:
    return [part.strip() for part in SENTENCE_RE.split(text) if part.strip()]


def _scan_fragments(text: str, rules: ExtractionRules) -> List[str]:
    splitter = _fragment_re(rules)
    tasks: List[str] = []
    for sentence in _sentences(text):
        for fragment in splitter.split(sentence):
            if not fragment or not fragment.strip():
                continue
            raw = _phrase_from_fragment(fragment, rules)
            if raw:
                _add_unique(tasks, normalize_phrase(raw, rules))
    return tasks


def _scan_sentences(text: str, rules: ExtractionRules, tasks: List[str]) -> None:
    pattern = _sentence_task_re(rules)
    for sentence in _sentences(text):
        for match in pattern.finditer(sentence):
            _add_unique(tasks, normalize_phrase(match.group(0), rules))


def default_tasks(
    text: str, rules: ExtractionRules, industry: Any = None
) -> List[str]:
    words = set(re.findall(r"\b\w+\b", text.lower()))
    for keyword, triad in rules.keyword_defaults.items():
        if keyword in words:
            return list(triad)
    industry_key = str(getattr(industry, "value", industry) or "").lower()
    if industry_key and industry_key in rules.industry_defaults:
        return list(rules.industry_defaults[industry_key])
    return list(rules.generic_default)


def extract(
    text: Any,
    rules: Optional[ExtractionRules] = None,
    industry: Any = None,
) -> List[ExtractedTask]:
    """
    Turn free text into ordered, deduplicated task phrases.

    Never raises: text without recognizable verbs falls back to a
    keyword- or industry-keyed default triad.
    """
    rules = rules or get_extraction_rules("en")
    text = text if isinstance(text, str) else ""

    tasks = _scan_fragments(text, rules)
    source = "fragments"
    if len(tasks) <= 1:
        _scan_sentences(text, rules, tasks)
        source = "sentences"
    if not tasks:
        tasks = default_tasks(text, rules, industry)
        source = "defaults"

    tasks = tasks[:MAX_TASKS]
    logger.debug("Extracted %d task(s) via %s: %s", len(tasks), source, tasks)
    return [ExtractedTask(phrase=phrase) for phrase in tasks]


def phrases(tasks: Iterable[ExtractedTask]) -> List[str]:
    return [task.phrase for task in tasks]


__all__ = ["MAX_TASKS", "extract", "is_duplicate", "normalize_phrase", "phrases"]
