"""
Tests for src.config module.

Covers:
    - LLMProvider enum values
    - Settings defaults, validation and from_yaml
    - Environment overrides (flags, ints, node timeouts)
    - Singleton get_settings / reset_settings behaviour
    - validate_env
"""

import pytest

from src.config import (
    LLMProvider,
    Settings,
    env_flag,
    get_settings,
    reset_settings,
    validate_env,
)
from src.exceptions import ConfigurationError


# ===========================================================================
# 1. LLMProvider enum
# ===========================================================================


class TestLLMProvider:
    """Tests for LLMProvider str enum."""

    def test_has_two_providers(self):
        assert len(LLMProvider) == 2

    def test_values(self):
        assert LLMProvider.OPENAI == "openai"
        assert LLMProvider.ANTHROPIC == "anthropic"


# ===========================================================================
# 2. env_flag
# ===========================================================================


class TestEnvFlag:
    @pytest.mark.parametrize("value", ["1", "true", "TRUE", "yes", "on"])
    def test_truthy_values(self, monkeypatch, value):
        monkeypatch.setenv("SOME_FLAG", value)
        assert env_flag("SOME_FLAG") is True

    @pytest.mark.parametrize("value", ["0", "false", "no", ""])
    def test_falsy_values(self, monkeypatch, value):
        monkeypatch.setenv("SOME_FLAG", value)
        assert env_flag("SOME_FLAG") is False

    def test_missing_uses_default(self):
        assert env_flag("DEFINITELY_NOT_SET_FLAG", default=True) is True


# ===========================================================================
# 3. Settings
# ===========================================================================


class TestSettings:
    """Tests for Settings dataclass defaults and from_yaml."""

    def test_default_provider_is_openai(self):
        assert Settings().llm_provider == "openai"

    def test_default_flags_are_off(self):
        settings = Settings()
        assert settings.text_only_mode is False
        assert settings.skip_relevancy_check is False
        assert settings.post_to_linkedin_organization is False
        assert settings.twitter_api_only is False
        assert settings.use_delegated_auth is False

    def test_default_quality_gate(self):
        settings = Settings()
        assert settings.min_report_length == 50
        assert settings.max_fetch_attempts == 2

    def test_default_schedule_is_saturday(self):
        settings = Settings()
        assert settings.schedule_weekday == 5
        assert "8:00 AM" in settings.allowed_times

    def test_default_node_timeouts_has_expected_keys(self):
        expected_keys = {
            "discover",
            "curate",
            "verify_links",
            "synthesize_report",
            "check_quality",
            "determine_post_type",
            "generate_post",
            "generate_visuals",
            "prepare_caption",
            "publish",
        }
        assert set(Settings().node_timeouts.keys()) == expected_keys

    def test_unknown_provider_raises(self):
        with pytest.raises(ConfigurationError, match="Unknown llm_provider"):
            Settings(llm_provider="gemini")

    def test_invalid_weekday_raises(self):
        with pytest.raises(ConfigurationError, match="schedule_weekday"):
            Settings(schedule_weekday=7)

    def test_empty_allowed_times_raises(self):
        with pytest.raises(ConfigurationError, match="allowed_times"):
            Settings(allowed_times=[])

    def test_api_key_env_var_follows_provider(self):
        assert Settings().api_key_env_var() == "OPENAI_API_KEY"
        assert Settings(llm_provider="anthropic").api_key_env_var() == "ANTHROPIC_API_KEY"

    def test_from_yaml_missing_file_returns_defaults(self, tmp_path):
        settings = Settings.from_yaml(tmp_path / "nonexistent.yaml")
        assert isinstance(settings, Settings)
        assert settings.min_report_length == 50

    def test_from_yaml_loads_custom_values(self, tmp_path):
        yaml_path = tmp_path / "settings.yaml"
        yaml_path.write_text(
            "llm_provider: anthropic\n"
            "min_report_length: 120\n"
            "allowed_times:\n"
            "  - '9:00 AM'\n"
            "node_timeouts:\n"
            "  publish: 30\n",
            encoding="utf-8",
        )

        settings = Settings.from_yaml(yaml_path)
        assert settings.llm_provider == "anthropic"
        assert settings.min_report_length == 120
        assert settings.allowed_times == ["9:00 AM"]
        assert settings.node_timeouts["publish"] == 30
        # Unspecified timeouts keep their defaults
        assert settings.node_timeouts["discover"] == 60

    def test_from_yaml_invalid_yaml_raises(self, tmp_path):
        yaml_path = tmp_path / "bad.yaml"
        yaml_path.write_text("{{{{invalid yaml: [", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="Failed to parse"):
            Settings.from_yaml(yaml_path)

    def test_from_yaml_non_mapping_raises(self, tmp_path):
        yaml_path = tmp_path / "list.yaml"
        yaml_path.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="must be a mapping"):
            Settings.from_yaml(yaml_path)

    def test_env_flags_override_yaml(self, tmp_path, monkeypatch):
        yaml_path = tmp_path / "settings.yaml"
        yaml_path.write_text("text_only_mode: false\n", encoding="utf-8")
        monkeypatch.setenv("TEXT_ONLY_MODE", "true")
        monkeypatch.setenv("SKIP_RELEVANCY_CHECK", "1")
        monkeypatch.setenv("USE_ARCADE_AUTH", "yes")
        monkeypatch.setenv("REQUIRES_APPROVAL", "true")

        settings = Settings.from_yaml(yaml_path)
        assert settings.text_only_mode is True
        assert settings.skip_relevancy_check is True
        assert settings.use_delegated_auth is True
        assert settings.requires_approval is True

    def test_env_provider_is_lowercased(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LLM_PROVIDER", "Anthropic")
        settings = Settings.from_yaml(tmp_path / "none.yaml")
        assert settings.llm_provider == "anthropic"

    def test_env_int_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MAX_FETCH_ATTEMPTS", "4")
        assert Settings.from_yaml(tmp_path / "none.yaml").max_fetch_attempts == 4

    def test_env_int_override_invalid_raises(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MIN_REPORT_LENGTH", "lots")
        with pytest.raises(ConfigurationError, match="MIN_REPORT_LENGTH"):
            Settings.from_yaml(tmp_path / "none.yaml")

    def test_env_node_timeout_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("NODE_TIMEOUT_PUBLISH", "5")
        monkeypatch.setenv("NODE_TIMEOUT_CURATE", "not-a-number")

        settings = Settings.from_yaml(tmp_path / "none.yaml")
        assert settings.node_timeouts["publish"] == 5
        assert settings.node_timeouts["curate"] == 60


# ===========================================================================
# 4. Singleton
# ===========================================================================


class TestSettingsSingleton:
    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_reset_settings_reloads(self):
        first = get_settings()
        reset_settings()
        assert get_settings() is not first


# ===========================================================================
# 5. validate_env
# ===========================================================================


class TestValidateEnv:
    def test_strict_missing_provider_key_raises(self):
        with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
            validate_env(strict=True, settings=Settings())

    def test_non_strict_reports_status(self):
        status = validate_env(strict=False, settings=Settings())
        assert status["OPENAI_API_KEY"] is False
        assert status["SERPER_API_KEY"] is False

    def test_present_key_passes(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
        status = validate_env(strict=True, settings=Settings(llm_provider="anthropic"))
        assert status["ANTHROPIC_API_KEY"] is True
