# Overview: Service-layer operations for store settings; key/value reads with typed defaults.

from __future__ import annotations

from typing import Any

from ..extensions import db
from ..models import Setting
from kasir.time_utils import utcnow, to_utc_z


ENABLE_DONATION_ROUNDING = "enableDonationRounding"
POINT_SYSTEM_ENABLED = "pointSystemEnabled"
POINT_MIN_PURCHASE = "pointMinPurchase"
POINT_VALUE_PER_POINT = "pointValuePerPoint"
LAST_DONATION_RESET_DATE = "lastDonationResetDate"

DEFAULT_SETTINGS: dict[str, Any] = {
    ENABLE_DONATION_ROUNDING: False,
    POINT_SYSTEM_ENABLED: False,
    POINT_MIN_PURCHASE: 0,
    POINT_VALUE_PER_POINT: 0,
    LAST_DONATION_RESET_DATE: None,
}


def get_setting(key: str, default: Any = None) -> Any:
    """Return the stored value, else the caller default, else the built-in default."""
    row = db.session.get(Setting, key)
    if row is not None and row.value is not None:
        return row.value
    if default is not None:
        return default
    return DEFAULT_SETTINGS.get(key)


def set_setting(key: str, value: Any) -> Setting:
    row = db.session.get(Setting, key)
    if row is None:
        row = Setting(key=key, value=value)
        db.session.add(row)
    else:
        row.value = value
    db.session.commit()
    return row


def get_all_settings() -> dict[str, Any]:
    values = dict(DEFAULT_SETTINGS)
    for row in db.session.query(Setting).all():
        values[row.key] = row.value
    return values


def update_settings(values: dict[str, Any]) -> dict[str, Any]:
    for key, value in values.items():
        row = db.session.get(Setting, key)
        if row is None:
            db.session.add(Setting(key=key, value=value))
        else:
            row.value = value
    db.session.commit()
    return get_all_settings()


def ensure_default_settings() -> int:
    """Insert missing default settings. Safe to call repeatedly (idempotent)."""
    created = 0
    for key, value in DEFAULT_SETTINGS.items():
        if db.session.get(Setting, key) is None:
            db.session.add(Setting(key=key, value=value))
            created += 1
    db.session.commit()
    return created


def is_donation_rounding_enabled() -> bool:
    return bool(get_setting(ENABLE_DONATION_ROUNDING))


def reset_donation_counter() -> str:
    """Restart the dashboard donation total from now."""
    stamp = to_utc_z(utcnow())
    set_setting(LAST_DONATION_RESET_DATE, stamp)
    return stamp
