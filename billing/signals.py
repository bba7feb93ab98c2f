"""
Signal handlers for Paydesk:
- Default settings for new users
"""

import logging

from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

logger = logging.getLogger(__name__)


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def create_default_settings(sender, instance, created: bool, **kwargs):
    if not created:
        return
    from .store import LedgerStore
    LedgerStore.upsert_settings(instance.id, {
        "reset_link_url": getattr(settings, "DEFAULT_RESET_LINK_URL", ""),
    })
