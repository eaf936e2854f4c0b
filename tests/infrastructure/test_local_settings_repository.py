from __future__ import annotations

import pytest

from hotel_offline.core.errors import ValidationError
from hotel_offline.domain.models import SettingType
from hotel_offline.infrastructure.outbox import SyncOutbox
from hotel_offline.infrastructure.seed import DEFAULT_SETTINGS
from hotel_offline.infrastructure.settings_repository import decode_setting, encode_setting, infer_setting_type


def test_defaults_are_decoded_by_type(settings_repo) -> None:
    settings_repo.seed_defaults([dict(item) for item in DEFAULT_SETTINGS])

    assert settings_repo.get_value("hotel_name") == "Lavimac Royal Hotel"
    assert settings_repo.get_value("auto_sync_interval") == 300
    assert settings_repo.get_value("offline_mode") is True
    assert settings_repo.get_value("last_sync_timestamp") == ""
    assert settings_repo.get_value("missing", default="fallback") == "fallback"


def test_seed_defaults_keeps_existing_values(settings_repo) -> None:
    settings_repo.set_value("currency", "USD")

    added = settings_repo.seed_defaults([dict(item) for item in DEFAULT_SETTINGS])

    assert added == len(DEFAULT_SETTINGS) - 1
    assert settings_repo.get_value("currency") == "USD"


def test_set_value_upserts_and_infers_type(settings_repo, outbox: SyncOutbox) -> None:
    first = settings_repo.set_value("theme", {"dark": True, "accent": "teal"})
    second = settings_repo.set_value("theme", {"dark": False})
    flag = settings_repo.set_value("sync_on_startup", False)

    assert first.type is SettingType.JSON
    assert second.value == {"dark": False}
    assert second.updated_at is not None
    assert flag.value is False
    assert settings_repo.count() == 2
    assert outbox.count_by_status()["total"] == 0


def test_explicit_type_must_match_value(settings_repo) -> None:
    with pytest.raises(ValidationError):
        settings_repo.set_value("offline_mode", "yes", SettingType.BOOLEAN)

    assert settings_repo.get_setting("offline_mode") is None


def test_as_dict_lists_every_setting(settings_repo) -> None:
    settings_repo.set_value("b_number", 2.5)
    settings_repo.set_value("a_text", "hello")

    assert settings_repo.as_dict() == {"a_text": "hello", "b_number": 2.5}


@pytest.mark.parametrize(
    ("value", "setting_type"),
    [("Lavimac", SettingType.STRING), (300, SettingType.NUMBER), (True, SettingType.BOOLEAN), ([1, 2], SettingType.JSON)],
)
def test_setting_codec(value, setting_type: SettingType) -> None:
    assert infer_setting_type(value) is setting_type
    assert decode_setting(encode_setting(value, setting_type), setting_type) == value
