"""
Stripe webhook endpoint.

The raw body is verified against the Stripe-Signature header before it is parsed.
Rejections return 400 so Stripe's own retry schedule governs redelivery; events
that are ignored, unmatched or already processed are acknowledged with 200.
"""

import logging
from typing import Optional

from django.conf import settings
from django.core.cache import cache
from django.http import HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from .config import PlatformDefaults, resolve_webhook_secret
from .errors import ReconciliationError
from .services import PaymentEventReconciler
from .store import LedgerStore
from .stripe_service import construct_event

logger = logging.getLogger(__name__)


def _client_ip(request) -> str:
    # Socket peer only; X-Forwarded-For is client-supplied.
    return request.META.get("REMOTE_ADDR") or "unknown"


def _rate_limited(request) -> bool:
    rate_key = f"stripe_webhook_rate:{_client_ip(request)}"
    rate_limit = getattr(settings, "STRIPE_WEBHOOK_RATE_LIMIT", 120)
    rate_window = getattr(settings, "STRIPE_WEBHOOK_RATE_WINDOW", 60)
    current_count = cache.get(rate_key, 0)
    if current_count >= rate_limit:
        return True
    cache.set(rate_key, current_count + 1, rate_window)
    return False


@csrf_exempt
@require_POST
def stripe_webhook(request, user_id: Optional[int] = None):
    """Verify and reconcile a Stripe event, signed with the platform secret or a tenant's own."""
    if _rate_limited(request):
        logger.warning("Stripe webhook rate limit exceeded for IP: %s", _client_ip(request))
        return HttpResponse(status=429)

    user_settings = LedgerStore.get_settings_by_user_id(user_id) if user_id is not None else None
    secret = resolve_webhook_secret(user_settings, PlatformDefaults.from_settings())
    signature = request.headers.get("Stripe-Signature", "")
    payload = request.body

    try:
        event = construct_event(payload, signature, secret)
    except ReconciliationError as exc:
        logger.warning(f"Rejected Stripe webhook: {exc.message}")
        return JsonResponse({"error": exc.message}, status=exc.status)

    try:
        outcome = PaymentEventReconciler.handle_event(event, payload, owner_id=user_id)
    except ReconciliationError as exc:
        logger.warning(f"Rejected Stripe event {event.get('id')}: {exc.message}")
        return JsonResponse({"error": exc.message}, status=exc.status)

    return JsonResponse({"received": True, "result": outcome.result}, status=200)
