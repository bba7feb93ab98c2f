from unittest.mock import MagicMock, patch

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from billing.store import LedgerStore
from tests.factories import make_customer, make_user
from tests.utils import WEBHOOK_SECRET, FakeStripe


@pytest.fixture(autouse=True)
def _isolate(settings):
    settings.STRIPE_SECRET_KEY = ""
    settings.STRIPE_WEBHOOK_SECRET = ""
    settings.SENDGRID_API_KEY = ""
    cache.clear()
    with patch("billing.services.invoice_service.PDFService.is_available", return_value=False):
        yield


@pytest.fixture
def user(db):
    return make_user(username="owner")


@pytest.fixture
def other_user(db):
    return make_user(username="intruder")


@pytest.fixture
def configured_user(user):
    LedgerStore.upsert_settings(user.id, {
        "stripe_secret_key": "sk_test_owner",
        "stripe_public_key": "pk_test_owner",
        "stripe_webhook_secret": WEBHOOK_SECRET,
        "sendgrid_api_key": "SG.test-owner",
        "sendgrid_from_email": "billing@owner.example.com",
        "company_name": "Owner Ltd",
    })
    return user


@pytest.fixture
def customer(user):
    return make_customer(user=user, name="Acme", email="ap@acme.example.com")


@pytest.fixture
def api_client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def stripe_api():
    fake = FakeStripe()
    with patch("billing.stripe_service.stripe.StripeClient", side_effect=fake):
        yield fake


@pytest.fixture
def sendgrid_client():
    with patch("billing.sendgrid_service.SendGridAPIClient") as client_cls:
        client_cls.return_value.send.return_value = MagicMock(status_code=202)
        yield client_cls.return_value


