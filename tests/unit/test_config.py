"""Tests for Settings validation and per-provider config building."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from journal_gateway.config import Environment, get_settings
from journal_gateway.dependencies import build_provider_configs
from journal_gateway.domain.enums import ProviderKind


class TestSettings:
    def test_defaults(self) -> None:
        settings = get_settings()
        assert settings.breaker_failure_threshold == 3
        assert settings.breaker_window_seconds == 120.0
        assert settings.breaker_cooldown_seconds == 60.0
        assert settings.breaker_backoff_multiplier == 1.0
        assert settings.vision_timeout_seconds == 90.0

    def test_log_level_is_upper_cased(self) -> None:
        assert get_settings(log_level="debug").log_level == "DEBUG"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"breaker_failure_threshold": 0},
            {"breaker_cooldown_seconds": 0},
            {"breaker_backoff_multiplier": 0.5},
            {"breaker_cooldown_seconds": 700, "breaker_max_cooldown_seconds": 600},
            {"provider_overrides": {"fax": {"failure_threshold": 1}}},
            {"provider_overrides": {"vision": {"cooldown_seconds": 900}}},
            {"app_env": Environment.PRODUCTION},
        ],
    )
    def test_rejects_invalid_values(self, overrides) -> None:
        with pytest.raises(ValidationError):
            get_settings(**overrides)

    def test_production_with_admin_token(self) -> None:
        settings = get_settings(app_env=Environment.PRODUCTION, admin_token="s3cret")
        assert settings.is_production


class TestProviderConfigs:
    def test_every_provider_gets_its_own_timeout(self) -> None:
        configs = build_provider_configs(get_settings())
        assert set(configs) == set(ProviderKind)
        assert configs[ProviderKind.TEXT].timeout_s == 60.0
        assert configs[ProviderKind.IMAGE].timeout_s == 120.0
        assert configs[ProviderKind.LIVE].timeout_s == 15.0

    def test_overrides_apply_to_one_provider_only(self) -> None:
        settings = get_settings(
            provider_overrides={"vision": {"failure_threshold": 5, "cooldown_seconds": 30}}
        )
        configs = build_provider_configs(settings)
        assert configs[ProviderKind.VISION].cb_failure_threshold == 5
        assert configs[ProviderKind.VISION].cb_cooldown_s == 30
        assert configs[ProviderKind.VISION].cb_window_s == 120.0
        assert configs[ProviderKind.TEXT].cb_failure_threshold == 3
        assert configs[ProviderKind.TEXT].cb_cooldown_s == 60.0
