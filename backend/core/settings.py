from __future__ import annotations

from dataclasses import dataclass
import os


def _get_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def _get_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def _get_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip()
    return value or default


def _get_lower_str(name: str, default: str) -> str:
    return _get_str(name, default).lower()


@dataclass(frozen=True)
class PrimaryGeneratorSettings:
    provider: str = _get_lower_str("GENERATOR_PROVIDER", "auto")
    api_key: str = _get_str("OPENAI_API_KEY", "")
    model: str = _get_str("GENERATOR_MODEL", "gpt-4o-mini")
    timeout_s: int = _get_int("GENERATOR_TIMEOUT_S", 25)
    max_tokens: int = _get_int("GENERATOR_MAX_TOKENS", 4000)


@dataclass(frozen=True)
class SecondaryGeneratorSettings:
    # Any OpenAI-compatible chat completions endpoint (Hugging Face router by default).
    api_key: str = _get_str("SECONDARY_API_KEY", _get_str("HUGGINGFACE_API_KEY", ""))
    base_url: str = _get_str("SECONDARY_BASE_URL", "https://router.huggingface.co/v1")
    model: str = _get_str("SECONDARY_MODEL", "meta-llama/Llama-3.1-8B-Instruct")
    timeout_s: int = _get_int("SECONDARY_TIMEOUT_S", 30)
    max_tokens: int = _get_int("SECONDARY_MAX_TOKENS", 4000)


@dataclass(frozen=True)
class RetrySettings:
    max_attempts: int = _get_int("GENERATOR_MAX_ATTEMPTS", 3)
    base_delay_s: float = _get_float("GENERATOR_BASE_DELAY_S", 1.0)


@dataclass(frozen=True)
class AppSettings:
    primary: PrimaryGeneratorSettings = PrimaryGeneratorSettings()
    secondary: SecondaryGeneratorSettings = SecondaryGeneratorSettings()
    retry: RetrySettings = RetrySettings()
    log_level: str = _get_str("LOG_LEVEL", "INFO").upper()


_SETTINGS = AppSettings()


def get_settings() -> AppSettings:
    return _SETTINGS
