"""Tests for SyncSettings."""

import os
import pytest
from datetime import timedelta
from unittest.mock import patch

from payments_sync.config import SyncSettings


class TestSyncSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self):
        """Test default values."""
        settings = SyncSettings()

        assert settings.default_page_size == 100
        assert settings.execution_ceiling == timedelta(minutes=10)
        assert settings.safety_margin == timedelta(seconds=30)
        assert settings.max_scan_pages == 1
        assert settings.max_drain_calls == 1000

    def test_from_env(self):
        """Test reading SYNC_* variables."""
        with patch.dict(os.environ, {
            "SYNC_DEFAULT_PAGE_SIZE": "25",
            "SYNC_EXECUTION_CEILING_SECONDS": "120",
            "SYNC_SAFETY_MARGIN_SECONDS": "5",
            "SYNC_SCAN_PAGES_PER_CALL": "4",
            "SYNC_MAX_DRAIN_CALLS": "7",
        }):
            settings = SyncSettings.from_env()

        assert settings.default_page_size == 25
        assert settings.execution_ceiling == timedelta(seconds=120)
        assert settings.safety_margin == timedelta(seconds=5)
        assert settings.max_scan_pages == 4
        assert settings.max_drain_calls == 7

    def test_zero_scan_pages_means_deadline_only(self):
        """Test that zero scan pages removes the page bound."""
        with patch.dict(os.environ, {"SYNC_SCAN_PAGES_PER_CALL": "0"}):
            settings = SyncSettings.from_env()

        assert settings.max_scan_pages is None

    def test_blank_variable_uses_default(self):
        """Test that an empty variable falls back to the default."""
        with patch.dict(os.environ, {"SYNC_DEFAULT_PAGE_SIZE": "  "}):
            assert SyncSettings.from_env().default_page_size == 100

    def test_non_integer_variable(self):
        """Test that a non-integer value is rejected with its name."""
        with patch.dict(os.environ, {"SYNC_MAX_DRAIN_CALLS": "lots"}):
            with pytest.raises(ValueError, match="SYNC_MAX_DRAIN_CALLS"):
                SyncSettings.from_env()

    def test_margin_must_be_below_ceiling(self):
        """Test that the margin cannot swallow the whole ceiling."""
        with pytest.raises(ValueError):
            SyncSettings(execution_ceiling_seconds=30, safety_margin_seconds=30)

    def test_page_size_must_be_positive(self):
        """Test that a zero default page size is rejected."""
        with pytest.raises(ValueError):
            SyncSettings(default_page_size=0)
