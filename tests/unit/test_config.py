"""
Unit Tests - Configuration
"""
import pytest
from pydantic import ValidationError

from grocery_analytics.config import Settings, get_settings
from grocery_analytics.config.settings import AnalyticsSettings, TrackingSettings


class TestSettings:
    """Tests for application settings"""

    def test_testing_environment(self, test_settings):
        """Test environment and debug flags"""
        assert test_settings.app_env == "testing"
        assert test_settings.debug is True
        assert not test_settings.is_production

    def test_invalid_environment(self):
        """Test unknown environments are rejected"""
        with pytest.raises(ValidationError):
            Settings(APP_ENV="moon")

    def test_analytics_defaults(self):
        """Test analytics defaults"""
        analytics = AnalyticsSettings()

        assert analytics.timezone == "Asia/Kolkata"
        assert analytics.default_range_days == 7
        assert analytics.top_products_limit == 5
        assert analytics.top_cities_limit == 6
        assert analytics.unknown_city == "Unknown City"

    def test_invalid_timezone(self):
        """Test unknown timezones are rejected at load time"""
        with pytest.raises(ValidationError):
            AnalyticsSettings(timezone="Mars/Olympus_Mons")

    def test_tracking_limits(self):
        """Test history caps"""
        tracking = TrackingSettings()

        assert tracking.max_order_history == 50
        assert tracking.max_view_history == 100
        assert tracking.max_search_history == 30

    def test_settings_cached(self):
        """Test settings are loaded once"""
        assert get_settings() is get_settings()
