import os

import pytest
from pydantic import ValidationError

from chatbridge.core.config import Settings, get_settings


@pytest.mark.unit
def test_defaults_match_polling_contract():
    settings = Settings(_env_file=None)

    assert settings.POLL_INTERVAL_SECONDS == 0.5
    assert settings.POLL_BATCH_LIMIT == 20
    assert settings.PIN_POLL_INTERVAL_SECONDS == 60
    assert settings.PIN_CONFIRMATION_DELAY_SECONDS == 0.5
    assert settings.PIN_CONVERSATION_FETCH_LIMIT == 200
    assert settings.EMOJI_ONLY_MAX_COUNT == 5
    assert settings.TAPBACK_HISTORY_MAX_TARGETS == 5000


@pytest.mark.unit
def test_chat_db_path_expands_user_directory():
    settings = Settings(_env_file=None, CHAT_DB_PATH="~/Library/Messages/chat.db")

    assert settings.CHAT_DB_FILE_PATH == os.path.expanduser(
        "~/Library/Messages/chat.db"
    )
    assert not settings.CHAT_DB_FILE_PATH.startswith("~")


@pytest.mark.unit
@pytest.mark.parametrize(
    "field",
    ["POLL_INTERVAL_SECONDS", "HINT_CHECK_INTERVAL_SECONDS", "PIN_POLL_INTERVAL_SECONDS"],
)
def test_non_positive_intervals_are_rejected(field):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: 0})


@pytest.mark.unit
def test_zero_confirmation_delay_is_allowed():
    settings = Settings(_env_file=None, PIN_CONFIRMATION_DELAY_SECONDS=0)
    assert settings.PIN_CONFIRMATION_DELAY_SECONDS == 0


@pytest.mark.unit
@pytest.mark.parametrize("field", ["POLL_BATCH_LIMIT", "SUBSCRIBER_QUEUE_SIZE"])
def test_limits_must_allow_one_entry(field):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: 0})


@pytest.mark.unit
def test_log_level_is_normalized():
    assert Settings(_env_file=None, LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"
    with pytest.raises(ValidationError):
        Settings(_env_file=None, LOG_LEVEL="chatty")


@pytest.mark.unit
def test_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv("POLL_BATCH_LIMIT", "50")
    monkeypatch.setenv("PINS_ENABLED", "false")

    settings = Settings(_env_file=None)

    assert settings.POLL_BATCH_LIMIT == 50
    assert settings.PINS_ENABLED is False


@pytest.mark.unit
def test_get_settings_is_cached():
    get_settings.cache_clear()
    try:
        assert get_settings() is get_settings()
    finally:
        get_settings.cache_clear()
