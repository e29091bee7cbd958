import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from fabricpos.exceptions import AppError
from fabricpos.models import Setting, SettingType
from fabricpos.schemas.settings import (
    BusinessSettings, BusinessSettingsUpdate, WhatsAppSettings, WhatsAppSettingsUpdate,
)

logger = logging.getLogger(__name__)

BUSINESS = "business"
WHATSAPP = "whatsapp"


def infer_type(value: Any) -> SettingType:
    if isinstance(value, bool):
        return SettingType.BOOLEAN
    if isinstance(value, (int, float, Decimal)):
        return SettingType.NUMBER
    if isinstance(value, (dict, list)):
        return SettingType.JSON
    return SettingType.STRING


def serialize_value(value: Any, setting_type: SettingType) -> Optional[str]:
    if value is None:
        return None
    if setting_type == SettingType.JSON:
        return json.dumps(value)
    if setting_type == SettingType.BOOLEAN:
        if isinstance(value, str):
            if value.lower() not in ("true", "false"):
                raise AppError.bad_request(f"'{value}' is not a boolean")
            return value.lower()
        return "true" if value else "false"
    if setting_type == SettingType.NUMBER:
        try:
            return str(Decimal(str(value)))
        except InvalidOperation:
            raise AppError.bad_request(f"'{value}' is not a number")
    return str(value)


def parse_value(setting: Setting) -> Any:
    raw = setting.value
    if raw is None:
        return None
    if setting.type == SettingType.BOOLEAN:
        return raw == "true"
    if setting.type == SettingType.NUMBER:
        number = Decimal(raw)
        return int(number) if number == number.to_integral_value() else float(number)
    if setting.type == SettingType.JSON:
        try:
            return json.loads(raw)
        except ValueError:
            logger.error(f"Setting {setting.key} holds invalid JSON")
            raise AppError.server_error(f"Setting {setting.key} is corrupted")
    return raw


def setting_payload(setting: Setting) -> dict:
    return {
        "key": setting.key,
        "value": parse_value(setting),
        "type": setting.type,
        "category": setting.category,
        "updated_at": setting.updated_at,
    }


def get_setting(db: Session, organization_id: int, key: str) -> Optional[Setting]:
    return db.query(Setting).filter(Setting.organization_id == organization_id, Setting.key == key).first()


def set_setting(db: Session, organization_id: int, key: str, value: Any,
                setting_type: Optional[SettingType] = None, category: str = "general") -> Setting:
    setting_type = setting_type or infer_type(value)
    setting = get_setting(db, organization_id, key)
    if setting is None:
        setting = Setting(organization_id=organization_id, key=key)
        db.add(setting)
    setting.value = serialize_value(value, setting_type)
    setting.type = setting_type
    setting.category = category
    db.flush()
    return setting


def list_settings(db: Session, organization_id: int, category: Optional[str] = None) -> List[Setting]:
    query = db.query(Setting).filter(Setting.organization_id == organization_id)
    if category:
        query = query.filter(Setting.category == category)
    return query.order_by(Setting.key).all()


def _category_values(db: Session, organization_id: int, category: str) -> Dict[str, Any]:
    prefix = f"{category}."
    values = {}
    for setting in list_settings(db, organization_id, category):
        if setting.key.startswith(prefix):
            values[setting.key[len(prefix):]] = parse_value(setting)
    return values


# --- Business ---
def get_business_settings(db: Session, organization_id: int) -> BusinessSettings:
    stored = _category_values(db, organization_id, BUSINESS)
    known = {k: v for k, v in stored.items() if k in BusinessSettings.model_fields and v is not None}
    return BusinessSettings(**known)


def save_business_settings(db: Session, organization_id: int, changes: Dict[str, Any]) -> BusinessSettings:
    for field, value in changes.items():
        if hasattr(value, "value"):  # enums
            value = value.value
        set_setting(db, organization_id, f"{BUSINESS}.{field}", value, category=BUSINESS)
    return get_business_settings(db, organization_id)


# --- WhatsApp ---
def get_whatsapp_settings(db: Session, organization_id: int) -> WhatsAppSettings:
    stored = _category_values(db, organization_id, WHATSAPP)
    known = {k: v for k, v in stored.items() if k in WhatsAppSettings.model_fields and v is not None}
    return WhatsAppSettings(**known)


def save_whatsapp_settings(db: Session, organization_id: int, changes: Dict[str, Any]) -> WhatsAppSettings:
    # a null field falls back to its default, the same way it is read back
    merged_values = {**get_whatsapp_settings(db, organization_id).model_dump(), **changes}
    merged = WhatsAppSettings(**{k: v for k, v in merged_values.items() if v is not None})
    if merged.method.value == "api" and merged.enabled:
        missing = [f for f in ("api_url", "access_token", "phone_number_id") if not getattr(merged, f)]
        if missing:
            raise AppError.bad_request(f"API method requires: {', '.join(missing)}")
    for field, value in changes.items():
        if hasattr(value, "value"):
            value = value.value
        set_setting(db, organization_id, f"{WHATSAPP}.{field}", value, category=WHATSAPP)
    return get_whatsapp_settings(db, organization_id)


# --- Keys owned by a settings group ---
GROUP_SCHEMAS = {
    BUSINESS: (BusinessSettingsUpdate, save_business_settings),
    WHATSAPP: (WhatsAppSettingsUpdate, save_whatsapp_settings),
}


def is_group_key(key: str) -> bool:
    group, dot, _ = key.partition(".")
    return bool(dot) and group in GROUP_SCHEMAS


def save_group_setting(db: Session, organization_id: int, key: str, value: Any) -> Setting:
    """Validates business.* and whatsapp.* keys with the schema of their group endpoint."""
    group, _, field = key.partition(".")
    schema, save = GROUP_SCHEMAS[group]
    if field not in schema.model_fields:
        raise AppError.bad_request(f"Unknown setting '{key}'")
    try:
        changes = schema.model_validate({field: value}).model_dump(exclude_unset=True)
    except ValidationError as exc:
        details = [{"field": key, "message": error["msg"]} for error in exc.errors()]
        raise AppError.bad_request(f"Invalid value for setting '{key}'", details)
    save(db, organization_id, changes)
    return get_setting(db, organization_id, key)


def mask_secret(value: Optional[str]) -> Optional[str]:
    if not value:
        return value
    return "*" * max(len(value) - 4, 4) + value[-4:]
