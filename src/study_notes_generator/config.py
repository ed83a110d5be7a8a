"""Configuration loader and LLM config builder.

Reads project settings from a YAML config file with ``${ENV_VAR}`` interpolation
and builds AG2 ``config_list`` entries for each model the pipeline calls.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .models import ModelEndpointOverride, ProjectConfig, ServiceConfig, TokenRates

load_dotenv()

# ---------------------------------------------------------------------------
# YAML loading with ${ENV_VAR} interpolation
# ---------------------------------------------------------------------------

_ENV_RE = re.compile(r"\$\{([^}]+)\}")


def _resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${ENV_VAR}`` references in strings."""
    if isinstance(value, str):
        def _replace(m: re.Match) -> str:
            return os.environ.get(m.group(1), "")
        return _ENV_RE.sub(_replace, value)
    if isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env_vars(v) for v in value]
    return value


def apply_service_fallbacks(config: ProjectConfig) -> ProjectConfig:
    """Fill empty service credentials from environment variables and normalise endpoint.

    ``OPENAI_API_KEY`` wins over ``AZURE_OPENAI_API_KEY`` when both are set.
    """
    svc = config.service
    if not svc.api_key:
        svc.api_key = os.getenv("OPENAI_API_KEY", "") or os.getenv("AZURE_OPENAI_API_KEY", "")
    if not svc.api_version:
        svc.api_version = os.getenv("AZURE_OPENAI_API_VERSION", "")
    if not svc.endpoint:
        svc.endpoint = os.getenv("AZURE_OPENAI_ENDPOINT", "")
    svc.endpoint = svc.endpoint.rstrip("/")
    return config


def load_config(config_path: str | Path) -> ProjectConfig:
    """Load a ``ProjectConfig`` from a YAML file.

    Environment variables referenced as ``${VAR_NAME}`` are resolved.
    Empty ``service`` fields fall back to ``OPENAI_API_KEY`` / ``AZURE_OPENAI_*``.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    resolved = _resolve_env_vars(raw)
    config = ProjectConfig.model_validate(resolved)
    return apply_service_fallbacks(config)


# ---------------------------------------------------------------------------
# LLM config builder
# ---------------------------------------------------------------------------

def _is_azure_openai_endpoint(endpoint: str) -> bool:
    """Return True for Azure OpenAI endpoints."""
    lower = endpoint.lower()
    return "openai.azure.com" in lower or "cognitiveservices.azure.com" in lower


def _build_single_entry(
    model: str,
    service: ServiceConfig,
    override: ModelEndpointOverride | None = None,
) -> dict[str, Any]:
    """Build a single AG2 config_list entry for the given model.

    An override with ``api_type`` is used as-is with its endpoint as
    ``base_url``. Azure OpenAI endpoints use ``api_type: "azure"`` with
    deployment-based routing; any other endpoint is treated as
    OpenAI-compatible via ``base_url``. No endpoint means api.openai.com.
    """
    api_key = service.api_key
    api_version = service.api_version
    endpoint = service.endpoint
    forced_api_type: str | None = None

    if override:
        endpoint = override.endpoint.rstrip("/")
        if override.api_key:
            api_key = override.api_key
        if override.api_version:
            api_version = override.api_version
        forced_api_type = override.api_type

    entry: dict[str, Any] = {
        "model": model,
        "api_key": api_key,
    }

    if forced_api_type:
        entry["api_type"] = forced_api_type
        entry["base_url"] = endpoint
    elif endpoint and _is_azure_openai_endpoint(endpoint):
        entry.update({
            "api_type": "azure",
            "azure_endpoint": endpoint,
            "api_version": api_version,
            "azure_deployment": model,
        })
    elif endpoint:
        entry["base_url"] = endpoint
    return entry


def build_model_llm_config(model: str, config: ProjectConfig) -> dict[str, Any]:
    """Return an AG2 ``OpenAIWrapper`` config dict for *model*.

    Caching is disabled so every call is a real, billed request. Client retries
    are off: the per-request deadline covers a single attempt.
    """
    override = config.models.overrides.get(model)
    entry = _build_single_entry(model, config.service, override=override)
    return {
        "config_list": [entry],
        "timeout": config.request_timeout,
        "max_retries": 0,
        "cache_seed": None,
    }


def rates_for(model: str, config: ProjectConfig) -> TokenRates:
    """Return the per-token rates for *model*; unknown models are a config error."""
    try:
        return config.rates[model]
    except KeyError:
        raise KeyError(
            f"No token rates configured for model {model!r}; add it under 'rates'"
        ) from None
