"""
Translator configuration management.

This module loads translator settings from multiple sources with a clear
priority order:

    1. Environment variables (highest priority) - for containerized deployments
    2. Config file (config/translator.ini, or the path in TRANSLATOR_CONFIG)
    3. config/translator.example.ini - fallback for development
    4. Built-in defaults (lowest priority)

Configuration is loaded once at module import time and cached. The
TranslatorConfig dataclass provides typed access to all settings.

Usage:
    from chat_translator.config import config

    print(config.api.model)
    print(config.rate_limit.min_interval_ms)
    print(config.detection_mode)

Environment Variable Mapping:
    TRANSLATOR_API_KEY            -> api.api_key
    TRANSLATOR_ENDPOINT_URL       -> api.endpoint_url
    TRANSLATOR_MODEL              -> api.model
    TRANSLATOR_TIMEOUT_SECONDS    -> api.timeout_seconds
    TRANSLATOR_MAX_CONCURRENT     -> rate_limit.max_concurrent
    TRANSLATOR_MIN_INTERVAL_MS    -> rate_limit.min_interval_ms
    TRANSLATOR_USE_AI_DETECTION   -> detection.use_ai_detection
    TRANSLATOR_AI_DETECT_ONLY     -> detection.ai_detect_only
    TRANSLATOR_GLOSSARY_PATH      -> glossary.path
    TRANSLATOR_LOG_LEVEL          -> logging.level
    TRANSLATOR_LOG_FORMAT         -> logging.format

Rate-limit coercion:
    max_concurrent   - non-integer or <= 0 becomes 1.
    min_interval_ms  - non-integer or <= 0 becomes 1000; any other value is
                       floored to an integer and raised to at least 100.
"""

import configparser
import logging
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from chat_translator.client import DEFAULT_ENDPOINT_URL, DEFAULT_MODEL, DEFAULT_TIMEOUT_SECONDS
from chat_translator.orchestrator import DetectionMode

logger = logging.getLogger(__name__)

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# Project root directory (contains src/, config/, data/)
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Config file paths
CONFIG_DIR = PROJECT_ROOT / "config"
CONFIG_FILE = CONFIG_DIR / "translator.ini"
CONFIG_EXAMPLE = CONFIG_DIR / "translator.example.ini"

DEFAULT_MAX_CONCURRENT = 1
DEFAULT_MIN_INTERVAL_MS = 1000
MIN_INTERVAL_FLOOR_MS = 100


# =============================================================================
# CONFIGURATION DATACLASSES
# =============================================================================


@dataclass
class ApiSettings:
    """Completion API connection settings."""

    api_key: str = ""
    endpoint_url: str = DEFAULT_ENDPOINT_URL
    model: str = DEFAULT_MODEL
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS


@dataclass
class RateLimitSettings:
    """Concurrency gate settings."""

    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    min_interval_ms: int = DEFAULT_MIN_INTERVAL_MS


@dataclass
class DetectionSettings:
    """Source-language detection strategy."""

    use_ai_detection: bool = False
    ai_detect_only: bool = False


@dataclass
class GlossarySettings:
    """Glossary file location (unset = no glossary)."""

    path: str | None = None

    @property
    def absolute_path(self) -> Path | None:
        """Get absolute path to the glossary file."""
        if not self.path:
            return None
        p = Path(self.path)
        if p.is_absolute():
            return p
        return PROJECT_ROOT / p


@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["simple", "detailed", "json"] = "detailed"


@dataclass
class TranslatorConfig:
    """
    Complete translator configuration.

    Aggregates all settings sections. Access via the module-level `config`
    singleton.
    """

    api: ApiSettings = field(default_factory=ApiSettings)
    rate_limit: RateLimitSettings = field(default_factory=RateLimitSettings)
    detection: DetectionSettings = field(default_factory=DetectionSettings)
    glossary: GlossarySettings = field(default_factory=GlossarySettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @property
    def detection_mode(self) -> DetectionMode:
        """Derive the orchestrator's detection mode from the flags.

        ``ai_detect_only`` wins when both flags are set.
        """
        if self.detection.ai_detect_only:
            return DetectionMode.AI_DETECT_ONLY
        if self.detection.use_ai_detection:
            return DetectionMode.AI
        return DetectionMode.RULES

    @property
    def has_api_key(self) -> bool:
        return bool(self.api.api_key.strip())


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================


def _parse_bool(value: str) -> bool:
    """Parse a string value to boolean."""
    return value.strip().lower() in ("true", "yes", "1", "on", "enabled")


def _parse_max_concurrent(value: str) -> int:
    """Parse max_concurrent; invalid or non-positive values become 1."""
    try:
        parsed = int(value.strip())
    except ValueError:
        logger.warning("Invalid max_concurrent %r; using %d", value, DEFAULT_MAX_CONCURRENT)
        return DEFAULT_MAX_CONCURRENT
    if parsed <= 0:
        return DEFAULT_MAX_CONCURRENT
    return parsed


def _parse_min_interval(value: str) -> int:
    """Parse min_interval_ms; invalid or non-positive values become the default."""
    try:
        parsed = float(value.strip())
    except ValueError:
        logger.warning("Invalid min_interval_ms %r; using %d", value, DEFAULT_MIN_INTERVAL_MS)
        return DEFAULT_MIN_INTERVAL_MS
    if not math.isfinite(parsed):
        logger.warning("Invalid min_interval_ms %r; using %d", value, DEFAULT_MIN_INTERVAL_MS)
        return DEFAULT_MIN_INTERVAL_MS
    if parsed <= 0:
        return DEFAULT_MIN_INTERVAL_MS
    return max(MIN_INTERVAL_FLOOR_MS, int(parsed))


def _parse_log_format(value: str) -> Literal["simple", "detailed", "json"] | None:
    val = value.strip().lower()
    if val in ("simple", "detailed", "json"):
        return val  # type: ignore[return-value]
    return None


def _load_from_ini(parser: configparser.ConfigParser, cfg: TranslatorConfig) -> None:
    """Load configuration from parsed INI file into TranslatorConfig."""
    # API section
    if parser.has_section("api"):
        if parser.has_option("api", "api_key"):
            cfg.api.api_key = parser.get("api", "api_key")
        if parser.has_option("api", "endpoint_url"):
            cfg.api.endpoint_url = parser.get("api", "endpoint_url")
        if parser.has_option("api", "model"):
            cfg.api.model = parser.get("api", "model")
        if parser.has_option("api", "timeout_seconds"):
            cfg.api.timeout_seconds = parser.getfloat("api", "timeout_seconds")

    # Rate limit section
    if parser.has_section("rate_limit"):
        if parser.has_option("rate_limit", "max_concurrent"):
            cfg.rate_limit.max_concurrent = _parse_max_concurrent(
                parser.get("rate_limit", "max_concurrent")
            )
        if parser.has_option("rate_limit", "min_interval_ms"):
            cfg.rate_limit.min_interval_ms = _parse_min_interval(
                parser.get("rate_limit", "min_interval_ms")
            )

    # Detection section
    if parser.has_section("detection"):
        if parser.has_option("detection", "use_ai_detection"):
            cfg.detection.use_ai_detection = _parse_bool(
                parser.get("detection", "use_ai_detection")
            )
        if parser.has_option("detection", "ai_detect_only"):
            cfg.detection.ai_detect_only = _parse_bool(parser.get("detection", "ai_detect_only"))

    # Glossary section
    if parser.has_section("glossary"):
        if parser.has_option("glossary", "path"):
            cfg.glossary.path = parser.get("glossary", "path").strip() or None

    # Logging section
    if parser.has_section("logging"):
        if parser.has_option("logging", "level"):
            cfg.logging.level = parser.get("logging", "level").upper()
        if parser.has_option("logging", "format"):
            if fmt := _parse_log_format(parser.get("logging", "format")):
                cfg.logging.format = fmt


def _apply_env_overrides(cfg: TranslatorConfig) -> None:
    """Apply environment variable overrides to configuration."""
    # API settings
    if env_key := os.getenv("TRANSLATOR_API_KEY"):
        cfg.api.api_key = env_key
    if env_endpoint := os.getenv("TRANSLATOR_ENDPOINT_URL"):
        cfg.api.endpoint_url = env_endpoint
    if env_model := os.getenv("TRANSLATOR_MODEL"):
        cfg.api.model = env_model
    if env_timeout := os.getenv("TRANSLATOR_TIMEOUT_SECONDS"):
        cfg.api.timeout_seconds = float(env_timeout)

    # Rate limit settings
    if env_concurrent := os.getenv("TRANSLATOR_MAX_CONCURRENT"):
        cfg.rate_limit.max_concurrent = _parse_max_concurrent(env_concurrent)
    if env_interval := os.getenv("TRANSLATOR_MIN_INTERVAL_MS"):
        cfg.rate_limit.min_interval_ms = _parse_min_interval(env_interval)

    # Detection settings
    if env_ai := os.getenv("TRANSLATOR_USE_AI_DETECTION"):
        cfg.detection.use_ai_detection = _parse_bool(env_ai)
    if env_detect_only := os.getenv("TRANSLATOR_AI_DETECT_ONLY"):
        cfg.detection.ai_detect_only = _parse_bool(env_detect_only)

    # Glossary settings
    if env_glossary := os.getenv("TRANSLATOR_GLOSSARY_PATH"):
        cfg.glossary.path = env_glossary

    # Logging settings
    if env_log := os.getenv("TRANSLATOR_LOG_LEVEL"):
        cfg.logging.level = env_log.upper()
    if env_format := os.getenv("TRANSLATOR_LOG_FORMAT"):
        if fmt := _parse_log_format(env_format):
            cfg.logging.format = fmt


def _resolve_config_file() -> Path | None:
    """Pick the INI file to read, or None when there is none."""
    if env_path := os.getenv("TRANSLATOR_CONFIG"):
        return Path(env_path)
    if CONFIG_FILE.exists():
        return CONFIG_FILE
    if CONFIG_EXAMPLE.exists():
        # Use example as fallback for development
        return CONFIG_EXAMPLE
    return None


def load_config() -> TranslatorConfig:
    """
    Load configuration from all sources with proper priority.

    Priority (highest wins):
        1. Environment variables
        2. TRANSLATOR_CONFIG path, else config/translator.ini
        3. config/translator.example.ini (fallback for development)
        4. Built-in defaults

    Returns:
        TranslatorConfig: Fully populated configuration object.

    Raises:
        FileNotFoundError: If TRANSLATOR_CONFIG names a missing file.
    """
    cfg = TranslatorConfig()

    config_file = _resolve_config_file()
    if config_file:
        if not config_file.exists():
            raise FileNotFoundError(f"Config file not found: {config_file}")
        parser = configparser.ConfigParser()
        parser.read(config_file, encoding="utf-8")
        _load_from_ini(parser, cfg)

    # Apply environment variable overrides (highest priority)
    _apply_env_overrides(cfg)

    return cfg


def reload_config() -> TranslatorConfig:
    """
    Reload configuration from disk and environment.

    This updates the module-level `config` singleton.

    Returns:
        TranslatorConfig: The newly loaded configuration.
    """
    global config
    config = load_config()
    return config


# =============================================================================
# MODULE-LEVEL SINGLETON
# =============================================================================

# Load configuration once at module import time
config = load_config()


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def _mask_secret(value: str) -> str:
    if not value:
        return "(not set)"
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}...{value[-4:]}"


def get_config_status() -> dict:
    """
    Get configuration status for diagnostics.

    The API key is never included, only whether one is set.
    """
    config_file = _resolve_config_file()
    return {
        "config_file_exists": CONFIG_FILE.exists(),
        "config_file_path": str(config_file or CONFIG_FILE),
        "using_example": config_file == CONFIG_EXAMPLE,
        "api_key_set": config.has_api_key,
        "detection_mode": config.detection_mode.value,
        "glossary_configured": config.glossary.path is not None,
    }


def print_config_summary() -> None:
    """Print a summary of current configuration to stdout."""
    status = get_config_status()
    print("\n" + "=" * 60)
    print("TRANSLATOR CONFIGURATION")
    print("=" * 60)
    print(f"Config file: {status['config_file_path']}")
    print(f"File exists: {status['config_file_exists']}")
    if status["using_example"]:
        print("WARNING: Using example config (copy to translator.ini for production)")
    print("-" * 60)
    print(f"Endpoint:     {config.api.endpoint_url}")
    print(f"Model:        {config.api.model}")
    print(f"API key:      {_mask_secret(config.api.api_key)}")
    print(f"Timeout:      {config.api.timeout_seconds}s")
    print(f"Concurrency:  {config.rate_limit.max_concurrent}")
    print(f"Min interval: {config.rate_limit.min_interval_ms}ms")
    print(f"Detection:    {config.detection_mode.value}")
    print(f"Glossary:     {config.glossary.absolute_path or '(none)'}")
    print(f"Log level:    {config.logging.level} ({config.logging.format})")
    print("=" * 60 + "\n")
