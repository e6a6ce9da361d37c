"""Tests for user preference parsing."""

import pytest

from binate.core.exceptions import ConfigError
from binate.models.preferences import (
    DEFAULT_IMPORTANT_KEYWORDS,
    AutonomousMode,
    PriorityResponseTime,
    UserPreferences,
    parse_preferences,
)


class TestParsePreferences:
    """Tests for parse_preferences."""

    def test_none_gives_all_defaults(self) -> None:
        prefs = parse_preferences(None)
        assert prefs.pause_ai is False
        assert prefs.auto_manage_tasks is True
        assert prefs.auto_manage_calendar is True
        assert prefs.slack_enabled is True
        assert prefs.priority_response_time == PriorityResponseTime.MEDIUM
        assert prefs.autonomous_mode == AutonomousMode.SEMI_MANUAL
        assert prefs.important_keywords == DEFAULT_IMPORTANT_KEYWORDS
        assert prefs.timezone == "UTC"

    def test_empty_string_gives_defaults(self) -> None:
        assert parse_preferences("") == UserPreferences()

    def test_camel_case_dict(self) -> None:
        prefs = parse_preferences(
            {
                "pauseAI": True,
                "autoManageCalendar": False,
                "priorityResponseTime": "high",
                "slackNotifications": {"taskAlertChannel": "C123"},
            }
        )
        assert prefs.pause_ai is True
        assert prefs.auto_manage_calendar is False
        assert prefs.priority_response_time == PriorityResponseTime.HIGH
        assert prefs.slack_notifications.task_alert_channel == "C123"

    def test_json_string(self) -> None:
        prefs = parse_preferences('{"autoManageTasks": false, "timezone": "Europe/Berlin"}')
        assert prefs.auto_manage_tasks is False
        assert prefs.timezone == "Europe/Berlin"

    def test_toggles_enabled_unless_explicitly_false(self) -> None:
        prefs = parse_preferences({"autoManageTasks": None, "taskReminders": None})
        assert prefs.auto_manage_tasks is True
        assert prefs.task_reminders is True

    def test_unknown_keys_ignored(self) -> None:
        prefs = parse_preferences({"someFutureFlag": 1})
        assert prefs == UserPreferences()

    def test_blank_keywords_dropped(self) -> None:
        prefs = parse_preferences({"importantKeywords": [" invoice ", "", "  "]})
        assert prefs.important_keywords == ["invoice"]

    def test_invalid_json_raises_config_error(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            parse_preferences("{not json")
        assert exc_info.value.code == "CONFIG_ERROR"

    def test_non_object_raises_config_error(self) -> None:
        with pytest.raises(ConfigError, match="JSON object"):
            parse_preferences("[1, 2]")

    def test_invalid_enum_raises_config_error(self) -> None:
        with pytest.raises(ConfigError, match="Invalid preferences"):
            parse_preferences({"priorityResponseTime": "whenever"})


class TestAutoReply:
    """Tests for the auto_reply property."""

    def test_only_fully_autonomous_auto_replies(self) -> None:
        assert parse_preferences({"autonomousMode": "fully_autonomous"}).auto_reply is True
        assert parse_preferences({"autonomousMode": "semi_manual"}).auto_reply is False
