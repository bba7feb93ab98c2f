"""
Credential resolution for the payment gateway and the mail provider.

Two tiers: a tenant's own UserSettings override the platform defaults
configured through Django settings. Credentials are resolved for every
operation and handed to the adapters explicitly; nothing here is cached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from django.conf import settings

from .errors import ConfigurationError, FieldError, ErrorCode, NotificationError

logger = logging.getLogger(__name__)

STRIPE_SECRET_PREFIX = "sk_"
STRIPE_PUBLIC_PREFIX = "pk_"
STRIPE_WEBHOOK_PREFIX = "whsec_"
SENDGRID_KEY_PREFIX = "SG."

# field name -> required prefix
KEY_PREFIXES = {
    "stripe_secret_key": STRIPE_SECRET_PREFIX,
    "stripe_public_key": STRIPE_PUBLIC_PREFIX,
    "stripe_webhook_secret": STRIPE_WEBHOOK_PREFIX,
    "sendgrid_api_key": SENDGRID_KEY_PREFIX,
}


@dataclass(frozen=True)
class PlatformDefaults:
    stripe_secret_key: str = ""
    stripe_public_key: str = ""
    stripe_webhook_secret: str = ""
    sendgrid_api_key: str = ""
    sendgrid_from_email: str = ""
    sendgrid_from_name: str = ""
    reset_link_url: str = ""

    @classmethod
    def from_settings(cls) -> "PlatformDefaults":
        return cls(
            stripe_secret_key=getattr(settings, "STRIPE_SECRET_KEY", ""),
            stripe_public_key=getattr(settings, "STRIPE_PUBLIC_KEY", ""),
            stripe_webhook_secret=getattr(settings, "STRIPE_WEBHOOK_SECRET", ""),
            sendgrid_api_key=getattr(settings, "SENDGRID_API_KEY", ""),
            sendgrid_from_email=getattr(settings, "SENDGRID_FROM_EMAIL", ""),
            sendgrid_from_name=getattr(settings, "SENDGRID_FROM_NAME", ""),
            reset_link_url=getattr(settings, "DEFAULT_RESET_LINK_URL", ""),
        )


@dataclass(frozen=True)
class GatewayCredentials:
    secret_key: str
    public_key: str = ""

    def __repr__(self) -> str:
        return f"GatewayCredentials(secret_key='{self.secret_key[:3]}***')"


@dataclass(frozen=True)
class MailCredentials:
    api_key: str
    from_email: str
    from_name: str = ""

    def __repr__(self) -> str:
        return f"MailCredentials(from_email='{self.from_email}')"


def _pick(user_settings: Any, field_name: str, default: str) -> str:
    value = getattr(user_settings, field_name, "") if user_settings is not None else ""
    return (value or default or "").strip()


def resolve_gateway_credentials(user_settings: Any, defaults: PlatformDefaults) -> GatewayCredentials:
    secret_key = _pick(user_settings, "stripe_secret_key", defaults.stripe_secret_key)
    public_key = _pick(user_settings, "stripe_public_key", defaults.stripe_public_key)

    if not secret_key:
        raise ConfigurationError(
            "Stripe secret key is not configured. Add it in settings.",
            fields=[FieldError("stripe_secret_key", ErrorCode.FIELD_REQUIRED.value, "Stripe secret key is required")],
        )
    if not secret_key.startswith(STRIPE_SECRET_PREFIX):
        raise ConfigurationError(
            "Invalid Stripe secret key format. It should start with 'sk_'.",
            fields=[FieldError("stripe_secret_key", ErrorCode.FIELD_INVALID.value, "Must start with 'sk_'")],
        )
    return GatewayCredentials(secret_key=secret_key, public_key=public_key)


def resolve_mail_credentials(user_settings: Any, defaults: PlatformDefaults) -> MailCredentials:
    api_key = _pick(user_settings, "sendgrid_api_key", defaults.sendgrid_api_key)
    from_email = _pick(user_settings, "sendgrid_from_email", defaults.sendgrid_from_email)

    if not api_key:
        raise NotificationError("SendGrid API key is not configured")
    if not api_key.startswith(SENDGRID_KEY_PREFIX):
        raise NotificationError("Invalid SendGrid API key format. It should start with 'SG.'")
    if not from_email:
        raise NotificationError("Sender email is not configured")
    return MailCredentials(api_key=api_key, from_email=from_email, from_name=defaults.sendgrid_from_name)


def resolve_webhook_secret(user_settings: Any, defaults: PlatformDefaults) -> str:
    return _pick(user_settings, "stripe_webhook_secret", defaults.stripe_webhook_secret)


def validate_credential_fields(data: Dict[str, Any]) -> Dict[str, List[str]]:
    """Prefix checks for any credential present in a settings update. Blank values clear a key."""
    errors: Dict[str, List[str]] = {}
    for field_name, prefix in KEY_PREFIXES.items():
        value: Optional[str] = data.get(field_name)
        if value and not value.strip().startswith(prefix):
            errors[field_name] = [f"Invalid format. It should start with '{prefix}'."]
    return errors
