# Overview: Single-row shared settings (taxonomy lists) with seeded defaults.

from __future__ import annotations

from ..extensions import db
from ..models import AppSettings, User
from ..validation import ValidationError
from . import activity_service as activity
from .concurrency import run_with_retry
from .permission_service import require_action

DELIVERY_IN_PERSON = "In person"
DELIVERY_COURIER = "Courier"
DELIVERY_AT_ADDRESS = "At customer address"

DEFAULT_SETTINGS = {
    "product_categories": ["General"],
    "variant_options": ["Small", "Medium", "Large"],
    "customer_types": ["Individual", "Corporate"],
    "sales_channels": ["Store", "Phone", "Online"],
    "delivery_types": [DELIVERY_IN_PERSON, DELIVERY_COURIER, DELIVERY_AT_ADDRESS],
    "shipping_companies": ["Standard Cargo", "Express Cargo"],
}


def get_settings() -> AppSettings:
    """Return the settings row, creating it with defaults on first use."""
    settings = db.session.query(AppSettings).order_by(AppSettings.id.asc()).first()
    if settings is None:
        settings = AppSettings(**{k: list(v) for k, v in DEFAULT_SETTINGS.items()})
        db.session.add(settings)
        db.session.commit()
    return settings


def _clean_list(field: str, value) -> list[str]:
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list of strings")
    cleaned = []
    for item in value:
        if not isinstance(item, str) or not item.strip():
            raise ValidationError(f"{field} entries must be non-empty strings")
        text = item.strip()
        if text not in cleaned:
            cleaned.append(text)
    return cleaned


def update_settings(actor: User, patch: dict) -> AppSettings:
    require_action(actor, "UPDATE_SETTINGS", resource="settings")
    unknown = [k for k in patch if k not in AppSettings.LIST_FIELDS]
    if unknown:
        raise ValidationError(f"Unknown settings: {', '.join(sorted(unknown))}")
    cleaned = {k: _clean_list(k, v) for k, v in patch.items()}

    def _op():
        settings = get_settings()
        for k, v in cleaned.items():
            setattr(settings, k, v)
        settings.updated_by_user_id = actor.id
        activity.log_activity(
            actor, activity.ACTION_UPDATE, activity.ENTITY_SETTINGS,
            "Updated settings: " + ", ".join(sorted(cleaned)),
            {"fields": sorted(cleaned)},
        )
        db.session.commit()
        return settings

    return run_with_retry(_op)
