"""
Centralized configuration loader for the content-publishing engine.

Loads settings from YAML files and environment variables, providing
sensible defaults when configuration files are absent.

Provides:
    - LLMProvider: Supported LLM providers
    - Settings: Global application settings loaded from YAML + env vars
    - get_settings(): Singleton accessor for Settings
    - validate_env(): Startup validation of required environment variables
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from src.exceptions import ConfigurationError

# ---------------------------------------------------------------------------
# Load .env file (no-op if file does not exist)
# ---------------------------------------------------------------------------
load_dotenv()

# ---------------------------------------------------------------------------
# Project root directory (parent of src/)
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}


# ===========================================================================
# LLM PROVIDERS
# ===========================================================================


class LLMProvider(str, Enum):
    """
    Interchangeable LLM providers.

    ``OPENAI`` supports native JSON-schema output; ``ANTHROPIC`` returns
    free text and relies on the shared structured-output parser.
    """

    OPENAI = "openai"
    ANTHROPIC = "anthropic"


PROVIDER_API_KEYS: Dict[str, str] = {
    LLMProvider.OPENAI.value: "OPENAI_API_KEY",
    LLMProvider.ANTHROPIC.value: "ANTHROPIC_API_KEY",
}


def env_flag(name: str, default: bool = False) -> bool:
    """Read a boolean environment variable (``1/true/yes/on``)."""
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


# ===========================================================================
# GLOBAL SETTINGS
# ===========================================================================


@dataclass
class Settings:
    """
    Global application settings.

    Loaded from ``config/settings.yaml`` when available, falling back to
    sensible defaults. Environment variables override YAML values for
    secrets and deployment-specific configuration.
    """

    # LLM settings
    llm_provider: str = LLMProvider.OPENAI.value
    openai_model: str = "gpt-4o-mini"
    anthropic_model: str = "claude-opus-4-5-20251101"

    # Logging
    log_level: str = "INFO"

    # Pipeline behaviour
    text_only_mode: bool = False
    skip_relevancy_check: bool = False
    post_to_linkedin_organization: bool = False
    twitter_api_only: bool = False
    use_delegated_auth: bool = False
    requires_approval: bool = False
    signature: str = "Made with Content Automation"

    # Content quality gate
    min_report_length: int = 50
    max_fetch_attempts: int = 2

    # Scheduling (weekday: Monday=0 ... Saturday=5)
    schedule_weekday: int = 5
    allowed_times: List[str] = field(default_factory=lambda: [
        "8:00 AM",
        "8:30 AM",
        "9:00 AM",
        "9:30 AM",
        "10:00 AM",
        "11:00 AM",
        "12:00 PM",
        "1:00 PM",
    ])

    # Node timeouts (seconds)
    node_timeouts: Dict[str, int] = field(default_factory=lambda: {
        "discover": 60,
        "curate": 60,
        "verify_links": 180,
        "synthesize_report": 90,
        "check_quality": 45,
        "determine_post_type": 45,
        "generate_post": 90,
        "generate_visuals": 180,
        "prepare_caption": 10,
        "publish": 180,
    })

    def __post_init__(self) -> None:
        """Validate enumerated fields (fail-fast)."""
        valid = [p.value for p in LLMProvider]
        if self.llm_provider not in valid:
            raise ConfigurationError(
                f"Unknown llm_provider '{self.llm_provider}'. Valid: {valid}"
            )
        if not 0 <= self.schedule_weekday <= 6:
            raise ConfigurationError(
                f"schedule_weekday must be 0-6, got {self.schedule_weekday}"
            )
        if not self.allowed_times:
            raise ConfigurationError("allowed_times must not be empty")

    @classmethod
    def from_yaml(cls, path: Optional[Path] = None) -> "Settings":
        """
        Load settings from a YAML file.

        If the file does not exist, returns an instance with all defaults.
        Environment variables override YAML values for specific keys.

        Args:
            path: Path to the YAML file. Defaults to
                ``<PROJECT_ROOT>/config/settings.yaml``.

        Returns:
            Populated Settings instance.

        Raises:
            ConfigurationError: If the YAML file exists but cannot be parsed,
                or an override holds an invalid value.
        """
        path = path or PROJECT_ROOT / "config" / "settings.yaml"

        data: Dict[str, Any] = {}
        if path.exists():
            try:
                with open(path, "r", encoding="utf-8") as fh:
                    data = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(
                    f"Failed to parse settings YAML at {path}: {exc}"
                ) from exc
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Settings YAML at {path} must be a mapping, got {type(data).__name__}"
            )

        kwargs: Dict[str, Any] = {
            k: v for k, v in data.items()
            if k in cls.__dataclass_fields__ and k != "node_timeouts"
        }

        # -----------------------------------------------------------------
        # Build node_timeouts (YAML + env var overrides)
        # -----------------------------------------------------------------
        node_timeouts = cls.__dataclass_fields__["node_timeouts"].default_factory()  # type: ignore[misc]
        node_timeouts.update(data.get("node_timeouts", {}) or {})
        for timeout_key in list(node_timeouts):
            env_key = f"NODE_TIMEOUT_{timeout_key.upper()}"
            env_val = os.environ.get(env_key)
            if env_val is not None:
                try:
                    node_timeouts[timeout_key] = int(env_val)
                except (ValueError, TypeError):
                    logger.warning(
                        "Invalid value for %s='%s', using default", env_key, env_val
                    )
        kwargs["node_timeouts"] = node_timeouts

        # -----------------------------------------------------------------
        # Environment overrides
        # -----------------------------------------------------------------
        str_overrides = {
            "LLM_PROVIDER": "llm_provider",
            "OPENAI_MODEL": "openai_model",
            "ANTHROPIC_MODEL": "anthropic_model",
            "LOG_LEVEL": "log_level",
            "POST_SIGNATURE": "signature",
        }
        for env_key, attr_name in str_overrides.items():
            env_val = os.environ.get(env_key)
            if env_val:
                kwargs[attr_name] = env_val.strip().lower() if attr_name == "llm_provider" else env_val

        flag_overrides = {
            "TEXT_ONLY_MODE": "text_only_mode",
            "SKIP_RELEVANCY_CHECK": "skip_relevancy_check",
            "POST_TO_LINKEDIN_ORGANIZATION": "post_to_linkedin_organization",
            "TWITTER_API_ONLY": "twitter_api_only",
            "USE_ARCADE_AUTH": "use_delegated_auth",
            "REQUIRES_APPROVAL": "requires_approval",
        }
        for env_key, attr_name in flag_overrides.items():
            if os.environ.get(env_key) is not None:
                kwargs[attr_name] = env_flag(env_key)

        int_overrides = {
            "MIN_REPORT_LENGTH": "min_report_length",
            "MAX_FETCH_ATTEMPTS": "max_fetch_attempts",
        }
        for env_key, attr_name in int_overrides.items():
            env_val = os.environ.get(env_key)
            if env_val is not None:
                try:
                    kwargs[attr_name] = int(env_val)
                except (ValueError, TypeError) as exc:
                    raise ConfigurationError(
                        f"Invalid value for env var {env_key}='{env_val}': {exc}"
                    ) from exc

        return cls(**kwargs)

    def api_key_env_var(self) -> str:
        """Name of the environment variable holding the selected provider's key."""
        return PROVIDER_API_KEYS[self.llm_provider]


# ===========================================================================
# SINGLETON SETTINGS ACCESSOR
# ===========================================================================

_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the global Settings singleton.

    On first call, loads from ``config/settings.yaml`` (or defaults).
    Subsequent calls return the cached instance.

    Returns:
        The global Settings instance.
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings.from_yaml()
    return _settings_instance


def reset_settings() -> None:
    """
    Reset the cached Settings singleton.

    Useful for testing or when configuration files have been updated
    at runtime.
    """
    global _settings_instance
    _settings_instance = None


# ===========================================================================
# ENVIRONMENT VARIABLE VALIDATION
# ===========================================================================

# Optional environment variables; each unlocks a collaborator, and every
# collaborator has a documented fallback when its key is absent.
OPTIONAL_ENV_VARS: List[str] = [
    "SERPER_API_KEY",
    "FIRECRAWL_API_KEY",
    "IMAGE_API_KEY",
    "INSTAGRAM_USERNAME",
    "INSTAGRAM_PASSWORD",
    "TWITTER_API_KEY",
    "TWITTER_API_KEY_SECRET",
    "TWITTER_ACCESS_TOKEN",
    "TWITTER_ACCESS_TOKEN_SECRET",
    "LINKEDIN_ACCESS_TOKEN",
    "LINKEDIN_PERSON_URN",
    "LINKEDIN_ORGANIZATION_ID",
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHAT_ID",
]


def required_env_vars(settings: Optional[Settings] = None) -> List[str]:
    """Required variables for the configured LLM provider."""
    settings = settings or get_settings()
    return [settings.api_key_env_var()]


def validate_env(
    strict: bool = True,
    settings: Optional[Settings] = None,
) -> Dict[str, bool]:
    """
    Validate that required environment variables are set.

    Args:
        strict: If ``True``, raise ``ConfigurationError`` when any required
            variable is missing. If ``False``, return the status dict
            without raising.
        settings: Settings to validate against. Defaults to the singleton.

    Returns:
        Dict mapping variable name to presence status (``True`` if set).

    Raises:
        ConfigurationError: If ``strict=True`` and required vars are missing.
    """
    status: Dict[str, bool] = {}
    missing: List[str] = []

    for var in required_env_vars(settings):
        present = bool(os.environ.get(var))
        status[var] = present
        if not present:
            missing.append(var)

    for var in OPTIONAL_ENV_VARS:
        status[var] = bool(os.environ.get(var))

    if strict and missing:
        raise ConfigurationError(
            f"Missing required environment variables: {missing}. "
            f"Copy .env.example to .env and fill in the values."
        )

    if missing:
        logger.warning("Missing required environment variables: %s", missing)

    return status


# ===========================================================================
# PUBLIC API
# ===========================================================================

__all__ = [
    # Configuration classes
    "LLMProvider",
    "Settings",
    "PROVIDER_API_KEYS",
    "env_flag",
    # Settings accessor
    "get_settings",
    "reset_settings",
    # Environment validation
    "validate_env",
    "required_env_vars",
    "OPTIONAL_ENV_VARS",
    # Constants
    "PROJECT_ROOT",
]
