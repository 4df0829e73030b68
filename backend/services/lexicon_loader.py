# services/lexicon_loader.py
from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, FrozenSet, Mapping, Tuple

import yaml

LEXICON_DIR_CANDIDATES = [
    Path(__file__).resolve().parents[1] / "config" / "lexicon",
    Path.cwd() / "config" / "lexicon",
]

Triad = Tuple[str, ...]


@dataclass(frozen=True)
class ExtractionRules:
    """Vocabulary that drives task extraction; swap it out to change behaviour."""

    verbs: FrozenSet[str]
    modifiers: FrozenSet[str] = frozenset()
    discourse_markers: FrozenSet[str] = frozenset()
    fillers: Tuple[str, ...] = ()
    trailing_nouns: FrozenSet[str] = frozenset()
    determiners: FrozenSet[str] = frozenset()
    separator_words: Tuple[str, ...] = ("and", "then", "to")
    keyword_defaults: Mapping[str, Triad] = field(default_factory=dict)
    industry_defaults: Mapping[str, Triad] = field(default_factory=dict)
    generic_default: Triad = ("Start Process", "Complete Activity", "Finish Process")


def _normalize_phrases(values: list[Any]) -> list[str]:
    """Lowercase phrases and drop blanks and duplicates, keeping order."""
    seen: set[str] = set()
    result: list[str] = []
    for item in values:
        phrase = " ".join(str(item).split()).lower()
        if phrase and phrase not in seen:
            seen.add(phrase)
            result.append(phrase)
    return result


def _triads(values: Mapping[str, Any] | None) -> Dict[str, Triad]:
    return {
        str(key).lower(): tuple(str(item).strip() for item in items if str(item).strip())
        for key, items in (values or {}).items()
        if isinstance(items, list)
    }


def _find_lexicon_path(lang: str) -> Path:
    fname = f"{lang}.yml"
    for base in LEXICON_DIR_CANDIDATES:
        candidate = base / fname
        if candidate.exists():
            return candidate
    searched = ", ".join(
        str((base / fname).resolve()) for base in LEXICON_DIR_CANDIDATES
    )
    raise FileNotFoundError(
        f"Could not find lexicon for language '{lang}'. Searched: {searched}"
    )


@lru_cache(maxsize=8)
def get_lexicon(lang: str = "en") -> Dict[str, Any]:
    """Load the YAML lexicon for the given language, phrase lists normalized."""
    path = _find_lexicon_path(lang)
    with path.open("r", encoding="utf-8") as handle:
        data: Dict[str, Any] = yaml.safe_load(handle) or {}

    for key, val in list(data.items()):
        if isinstance(val, list):
            data[key] = _normalize_phrases(val)
    return data


def rules_from_lexicon(lex: Mapping[str, Any]) -> ExtractionRules:
    defaults = lex.get("default_tasks") or {}
    generic = tuple(defaults.get("generic") or ()) or ExtractionRules.generic_default
    return ExtractionRules(
        verbs=frozenset(lex.get("action_verbs") or ()),
        modifiers=frozenset(lex.get("modifiers") or ()),
        discourse_markers=frozenset(lex.get("discourse_markers") or ()),
        # longest first so "after that" wins over "after"
        fillers=tuple(sorted(lex.get("fillers") or (), key=len, reverse=True)),
        trailing_nouns=frozenset(lex.get("trailing_nouns") or ()),
        determiners=frozenset(lex.get("determiners") or ()),
        separator_words=tuple(lex.get("separator_words") or ("and", "then", "to")),
        keyword_defaults=_triads(defaults.get("keywords")),
        industry_defaults=_triads(defaults.get("industries")),
        generic_default=generic,
    )


@lru_cache(maxsize=8)
def get_extraction_rules(lang: str = "en") -> ExtractionRules:
    return rules_from_lexicon(get_lexicon(lang))


__all__ = ["ExtractionRules", "get_extraction_rules", "get_lexicon", "rules_from_lexicon"]
