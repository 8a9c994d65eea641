"""
Kiro Gateway - Configuration

Upstream endpoints, model name mapping and environment-driven settings.
"""

import os
from dataclasses import dataclass
from typing import Dict, Mapping, Optional


KIRO_REFRESH_URL_TEMPLATE = "https://prod.{region}.auth.desktop.kiro.dev/refreshToken"
KIRO_API_HOST_TEMPLATE = "https://codewhisperer.{region}.amazonaws.com"
GENERATE_PATH = "/generateAssistantResponse"

DEFAULT_REGION = "us-east-1"

TOKEN_REFRESH_THRESHOLD = 600  # seconds before expiry that trigger a refresh
TOOL_DESCRIPTION_MAX_LENGTH = 10000

# External model name -> Kiro internal model id
MODEL_MAPPING: Dict[str, str] = {
    "claude-opus-4-5": "claude-opus-4.5",
    "claude-opus-4-5-20251101": "claude-opus-4.5",
    "claude-haiku-4-5": "claude-haiku-4.5",
    "claude-haiku-4.5": "claude-haiku-4.5",
    "claude-sonnet-4-5": "CLAUDE_SONNET_4_5_20250929_V1_0",
    "claude-sonnet-4-5-20250929": "CLAUDE_SONNET_4_5_20250929_V1_0",
    "claude-sonnet-4": "CLAUDE_SONNET_4_20250514_V1_0",
    "claude-sonnet-4-20250514": "CLAUDE_SONNET_4_20250514_V1_0",
    "claude-3-7-sonnet-20250219": "CLAUDE_3_7_SONNET_20250219_V1_0",
    "auto": "claude-sonnet-4.5",
}


def get_kiro_refresh_url(region: str) -> str:
    """Token refresh endpoint for a region."""
    return KIRO_REFRESH_URL_TEMPLATE.replace("{region}", region)


def get_kiro_api_host(region: str) -> str:
    """CodeWhisperer API host for a region."""
    return KIRO_API_HOST_TEMPLATE.replace("{region}", region)


def get_internal_model_id(external_model: str) -> str:
    """Map a client-facing model name to the Kiro id; unknown names pass through."""
    return MODEL_MAPPING.get(external_model, external_model)


@dataclass
class GatewaySettings:
    """Runtime settings for the gateway."""
    region: str = DEFAULT_REGION
    db_path: Optional[str] = None
    refresh_token: Optional[str] = None
    profile_arn: Optional[str] = None
    idle_timeout: float = 15.0
    max_retries: int = 3
    request_timeout: float = 120.0
    gateway_api_key: Optional[str] = None
    log_level: str = "INFO"
    log_format: str = "json"
    otlp_endpoint: Optional[str] = None
    otel_console_export: bool = False


def _optional(env: Mapping[str, str], key: str) -> Optional[str]:
    value = env.get(key, "").strip()
    return value or None


def _positive_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    value = float(raw)
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {raw!r}")
    return value


def _positive_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    value = int(raw)
    if value < 1:
        raise ValueError(f"{key} must be at least 1, got {raw!r}")
    return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> GatewaySettings:
    """
    Load settings from environment variables.

    Raises:
        ValueError: If a numeric variable is malformed or out of range.
    """
    env = os.environ if env is None else env
    return GatewaySettings(
        region=_optional(env, "KIRO_REGION") or DEFAULT_REGION,
        db_path=_optional(env, "KIRO_DB_PATH"),
        refresh_token=_optional(env, "KIRO_REFRESH_TOKEN"),
        profile_arn=_optional(env, "KIRO_PROFILE_ARN"),
        idle_timeout=_positive_float(env, "KIRO_IDLE_TIMEOUT", 15.0),
        max_retries=_positive_int(env, "KIRO_MAX_RETRIES", 3),
        request_timeout=_positive_float(env, "KIRO_REQUEST_TIMEOUT", 120.0),
        gateway_api_key=_optional(env, "GATEWAY_API_KEY"),
        log_level=(_optional(env, "LOG_LEVEL") or "INFO").upper(),
        log_format=(_optional(env, "LOG_FORMAT") or "json").lower(),
        otlp_endpoint=_optional(env, "OTEL_EXPORTER_OTLP_ENDPOINT"),
        otel_console_export=(_optional(env, "OTEL_CONSOLE_EXPORT") or "").lower() in ("1", "true", "yes"),
    )
