"""
Provider configuration loading/parsing.

Providers are declared through environment variables:

    LLM_PROVIDERS=openai,gemini
    LLM_PROVIDER_openai_NAME=openai
    LLM_PROVIDER_openai_KIND=openai
    LLM_PROVIDER_openai_BASE_URL=https://api.openai.com
    LLM_PROVIDER_openai_API_KEY=...
    LLM_PROVIDER_openai_MODEL=gpt-4o-mini
    LLM_PROVIDER_openai_COST_PER_TOKEN=0.00002
    LLM_PROVIDER_openai_CONTENT_TYPES=blog_post,email
    ...

Only providers with all required fields are returned. Misconfigured
providers are skipped with a warning so that a single bad entry does not
take the whole routing layer down.
"""

from __future__ import annotations

import os
from typing import Dict, List, Optional

from pydantic import ValidationError

from aigate.logging_config import logger
from aigate.models import ProviderCapabilities, ProviderConfig
from aigate.settings import settings


REQUIRED_SUFFIXES = ("NAME", "BASE_URL", "API_KEY", "MODEL")

_KNOWN_SUFFIXES = (
    "NAME",
    "KIND",
    "BASE_URL",
    "API_KEY",
    "MODEL",
    "MODELS_PATH",
    "COST_PER_TOKEN",
    "RESPONSE_TIME_THRESHOLD_MS",
    "DAILY_BUDGET",
    "MONTHLY_BUDGET",
    "CONTENT_TYPES",
    "LANGUAGES",
    "TONES",
    "MAX_TOKENS",
    "MAX_RPM",
    "MIN_QUALITY",
    "MAX_QUALITY",
    "STREAMING",
    "FUNCTION_CALLING",
    "IMAGE_GENERATION",
)

_FLOAT_FIELDS = {
    "COST_PER_TOKEN": "cost_per_token",
    "DAILY_BUDGET": "daily_budget",
    "MONTHLY_BUDGET": "monthly_budget",
}

_DOTENV_CACHE: Optional[Dict[str, str]] = None


def _env_key(provider_id: str, suffix: str) -> str:
    return f"LLM_PROVIDER_{provider_id}_{suffix}"


def _load_env_from_dotenv() -> Dict[str, str]:
    """
    Read KEY=VALUE pairs from the project .env file, for local runs where
    provider variables are not exported by the shell.
    """
    global _DOTENV_CACHE
    if _DOTENV_CACHE is not None:
        return _DOTENV_CACHE

    env_path = os.getenv("AIGATE_ENV_FILE", ".env")
    data: Dict[str, str] = {}
    try:
        with open(env_path, "r", encoding="utf-8") as f:
            for line in f:
                stripped = line.strip()
                if not stripped or stripped.startswith("#") or "=" not in stripped:
                    continue
                key, value = stripped.split("=", 1)
                value = value.strip()
                if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
                    value = value[1:-1]
                if key.strip():
                    data[key.strip()] = value
    except FileNotFoundError:
        data = {}
    except OSError as exc:
        logger.warning("Failed to load .env file %s: %s", env_path, exc)
        data = {}

    _DOTENV_CACHE = data
    return data


def _load_raw_provider_env(provider_id: str) -> Dict[str, str]:
    raw: Dict[str, str] = {}
    for suffix in _KNOWN_SUFFIXES:
        env_var = _env_key(provider_id, suffix)
        value = os.getenv(env_var)
        if value is None:
            value = _load_env_from_dotenv().get(env_var)
        if value is not None:
            raw[suffix] = value
    return raw


def _split_list(value: str) -> frozenset[str]:
    return frozenset(item.strip() for item in value.split(",") if item.strip())


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_capabilities(provider_id: str, raw: Dict[str, str]) -> Dict[str, object]:
    caps: Dict[str, object] = {}
    if "CONTENT_TYPES" in raw:
        caps["supported_content_types"] = _split_list(raw["CONTENT_TYPES"])
    if "LANGUAGES" in raw:
        caps["supported_languages"] = _split_list(raw["LANGUAGES"])
    if "TONES" in raw:
        caps["supported_tones"] = _split_list(raw["TONES"])

    numeric = {
        "MAX_TOKENS": ("max_tokens_per_request", int),
        "MAX_RPM": ("max_requests_per_minute", int),
        "MIN_QUALITY": ("min_quality_score", float),
        "MAX_QUALITY": ("max_quality_score", float),
    }
    for suffix, (field, cast) in numeric.items():
        if suffix not in raw:
            continue
        try:
            caps[field] = cast(raw[suffix])
        except ValueError:
            logger.warning(
                "Provider %s: invalid %s=%r, using default",
                provider_id,
                suffix,
                raw[suffix],
            )

    flags = {
        "STREAMING": "supports_streaming",
        "FUNCTION_CALLING": "supports_function_calling",
        "IMAGE_GENERATION": "supports_image_generation",
    }
    for suffix, field in flags.items():
        if suffix in raw:
            caps[field] = _parse_bool(raw[suffix])
    return caps


def _parse_provider_config(provider_id: str, raw: Dict[str, str]) -> ProviderConfig | None:
    """
    Convert raw env values into a ProviderConfig instance.
    Returns None if required fields are missing or validation fails.
    """
    missing = [s for s in REQUIRED_SUFFIXES if s not in raw]
    if missing:
        logger.warning(
            "Skipping provider %s due to missing required config: %s",
            provider_id,
            ", ".join(missing),
        )
        return None

    data: Dict[str, object] = {
        "id": provider_id,
        "name": raw["NAME"],
        "base_url": raw["BASE_URL"],
        "api_key": raw["API_KEY"],
        "model": raw["MODEL"],
    }

    kind = raw.get("KIND", "openai").strip().lower()
    if kind not in ("openai", "gemini"):
        logger.warning(
            "Provider %s: invalid KIND=%r, falling back to openai",
            provider_id,
            raw.get("KIND"),
        )
        kind = "openai"
    data["kind"] = kind

    if "MODELS_PATH" in raw:
        data["models_path"] = raw["MODELS_PATH"].strip() or None

    for suffix, field in _FLOAT_FIELDS.items():
        if suffix not in raw:
            continue
        try:
            data[field] = float(raw[suffix])
        except ValueError:
            logger.warning(
                "Provider %s: invalid %s=%r, ignoring", provider_id, suffix, raw[suffix]
            )
    if "RESPONSE_TIME_THRESHOLD_MS" in raw:
        try:
            data["response_time_threshold_ms"] = int(raw["RESPONSE_TIME_THRESHOLD_MS"])
        except ValueError:
            logger.warning(
                "Provider %s: invalid RESPONSE_TIME_THRESHOLD_MS=%r, ignoring",
                provider_id,
                raw["RESPONSE_TIME_THRESHOLD_MS"],
            )

    try:
        data["capabilities"] = ProviderCapabilities(**_parse_capabilities(provider_id, raw))
        return ProviderConfig(**data)
    except ValidationError as exc:
        logger.warning(
            "Skipping provider %s due to validation error: %s",
            provider_id,
            exc,
        )
        return None


def load_provider_configs() -> List[ProviderConfig]:
    """
    Load all configured providers from environment, skipping invalid ones.
    """
    providers: List[ProviderConfig] = []
    for provider_id in settings.get_llm_provider_ids():
        raw = _load_raw_provider_env(provider_id)
        if not raw:
            logger.warning(
                "Provider %s listed in LLM_PROVIDERS but has no env config; skipping",
                provider_id,
            )
            continue
        cfg = _parse_provider_config(provider_id, raw)
        if cfg is not None:
            providers.append(cfg)
    return providers


__all__ = ["load_provider_configs"]
