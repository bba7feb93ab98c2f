import os
import logging
from django.core.exceptions import ImproperlyConfigured

logger = logging.getLogger(__name__)

REQUIRED_PRODUCTION_ENV_VARS = ["SECRET_KEY", "DATABASE_URL"]

# Platform fallback credentials and the prefix each must carry when set.
# Tenants can supply their own keys, so none of these is mandatory.
PLATFORM_CREDENTIAL_PREFIXES = {
    "STRIPE_SECRET_KEY": "sk_",
    "STRIPE_PUBLIC_KEY": "pk_",
    "STRIPE_WEBHOOK_SECRET": "whsec_",
    "SENDGRID_API_KEY": "SG.",
}


def credential_problems(environ=None):
    """Return one message per platform credential that is set but malformed."""
    environ = os.environ if environ is None else environ
    problems = []
    for name, prefix in PLATFORM_CREDENTIAL_PREFIXES.items():
        value = environ.get(name, "")
        if value and not value.startswith(prefix):
            problems.append(f"{name} should start with '{prefix}'")
    return problems


def validate_env():
    """
    Fail fast on a production deployment that cannot run; warn on anything
    that only degrades the platform fallback.
    """
    is_production = os.getenv("PRODUCTION", "false").lower() == "true"
    secret_key = os.getenv("SECRET_KEY", "")

    if is_production:
        missing = [var for var in REQUIRED_PRODUCTION_ENV_VARS if not os.getenv(var)]
        if missing:
            error_msg = f"CRITICAL: Missing required environment variables in production: {', '.join(missing)}"
            logger.critical(error_msg)
            raise ImproperlyConfigured(error_msg)
        if secret_key.startswith("django-insecure") or len(secret_key) < 50:
            error_msg = "CRITICAL: SECRET_KEY must be a long, secure string in production"
            logger.critical(error_msg)
            raise ImproperlyConfigured(error_msg)
    elif not secret_key:
        logger.warning("SECRET_KEY not set, using insecure default for development.")

    for problem in credential_problems():
        logger.warning(f"Malformed platform credential: {problem}")

    unset = [name for name in PLATFORM_CREDENTIAL_PREFIXES if not os.getenv(name)]
    if unset:
        logger.info(f"No platform default for {', '.join(unset)}; tenants must configure their own")
