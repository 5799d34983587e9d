"""Tests for configuration loading."""

import pytest

from willow.config import (
    AppSettings,
    RankingSettings,
    get_settings,
    validate_all_settings,
)


class TestRankingSettings:
    """Tests for rank spacing configuration."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("WILLOW_RANK_GAP", raising=False)
        monkeypatch.delenv("WILLOW_RANK_EPSILON", raising=False)
        settings = RankingSettings()
        assert settings.gap == 1000.0
        assert settings.epsilon == 1e-6

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("WILLOW_RANK_GAP", "64")
        assert RankingSettings().gap == 64.0

    @pytest.mark.parametrize("gap", [0, -5, 1e-4])
    def test_rejects_unusable_gap(self, gap):
        with pytest.raises(ValueError):
            RankingSettings(gap=gap)

    def test_rejects_non_positive_epsilon(self):
        with pytest.raises(ValueError):
            RankingSettings(epsilon=0)


class TestAppSettings:
    """Tests for application settings."""

    def test_defaults(self, monkeypatch):
        for name in ("STORAGE_BACKEND", "DEFAULT_PRIORITY", "REORDER_MAX_ATTEMPTS"):
            monkeypatch.delenv(f"WILLOW_{name}", raising=False)
        settings = AppSettings()
        assert settings.storage_backend == "memory"
        assert settings.default_priority == 4
        assert settings.reorder_max_attempts == 3
        assert settings.seed_onboarding_tasks is True

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValueError):
            AppSettings(storage_backend="postgres")

    def test_priority_bounds(self):
        with pytest.raises(ValueError):
            AppSettings(default_priority=5)


class TestSettingsRoot:
    """Tests for the aggregated settings."""

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_validate_all_settings_reports_missing_sheets(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)

        results = validate_all_settings()

        assert results["ranking"] is True
        assert results["app"] is True
        assert results["google_sheets"] is False
        assert "google_sheets_error" in results


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
