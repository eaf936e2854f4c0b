from __future__ import annotations

import json
from typing import Any

from hotel_offline.core.errors import ValidationError
from hotel_offline.domain.models import LocalSetting, SettingType
from hotel_offline.infrastructure.repository import Record, SQLiteRepository


def infer_setting_type(value: Any) -> SettingType:
    if isinstance(value, bool):
        return SettingType.BOOLEAN
    if isinstance(value, (int, float)):
        return SettingType.NUMBER
    if isinstance(value, str):
        return SettingType.STRING
    return SettingType.JSON


def encode_setting(value: Any, setting_type: SettingType) -> str:
    if setting_type is SettingType.BOOLEAN:
        if not isinstance(value, bool):
            raise ValidationError(f"Boolean setting expects bool, got {type(value).__name__}")
        return "true" if value else "false"
    if setting_type is SettingType.NUMBER:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f"Number setting expects a number, got {type(value).__name__}")
        return str(value)
    if setting_type is SettingType.JSON:
        return json.dumps(value, ensure_ascii=False)
    if not isinstance(value, str):
        raise ValidationError(f"String setting expects str, got {type(value).__name__}")
    return value


def decode_setting(raw: str | None, setting_type: SettingType) -> Any:
    if raw is None:
        return None
    if setting_type is SettingType.BOOLEAN:
        return raw.strip().lower() == "true"
    if setting_type is SettingType.NUMBER:
        if raw.strip() == "":
            return None
        number = float(raw)
        return int(number) if number.is_integer() and "." not in raw else number
    if setting_type is SettingType.JSON:
        return json.loads(raw) if raw else None
    return raw


class LocalSettingsRepository(SQLiteRepository):
    """Device-local key/value configuration with typed values."""

    def get_setting(self, key: str) -> LocalSetting | None:
        row = self.find_by_id(key)
        if row is None:
            return None
        setting_type = SettingType(row.get("type") or SettingType.STRING.value)
        return LocalSetting(
            key=row["key"],
            value=decode_setting(row.get("value"), setting_type),
            type=setting_type,
            updated_at=row.get("updated_at"),
        )

    def get_value(self, key: str, default: Any = None) -> Any:
        setting = self.get_setting(key)
        if setting is None or setting.value is None:
            return default
        return setting.value

    def set_value(self, key: str, value: Any, value_type: SettingType | str | None = None) -> LocalSetting:
        setting_type = SettingType(value_type) if value_type is not None else infer_setting_type(value)
        encoded = encode_setting(value, setting_type)
        with self._engine.transaction():
            if self.exists(key):
                self.update(key, {"value": encoded, "type": setting_type.value})
            else:
                self.create({"key": key, "value": encoded, "type": setting_type.value})
        setting = self.get_setting(key)
        if setting is None:
            raise ValidationError(f"Setting {key!r} was not stored")
        return setting

    def as_dict(self) -> dict[str, Any]:
        settings: dict[str, Any] = {}
        for row in self.find_all(order_by="key ASC"):
            setting_type = SettingType(row.get("type") or SettingType.STRING.value)
            settings[row["key"]] = decode_setting(row.get("value"), setting_type)
        return settings

    def seed_defaults(self, defaults: list[Record]) -> int:
        missing = [item for item in defaults if not self.exists(item["key"])]
        if missing:
            self.bulk_create(missing)
        return len(missing)
