"""
Shared fixtures for the offer engine tests
"""

from datetime import datetime, timezone

import pytest

from offer_engine import InMemoryOfferStore, OfferEngine
from offer_engine.config import OfferEngineConfig
from offer_engine.models import Offer

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_offer():
    """Factory for canonical offers with sensible defaults"""

    def _make(offer_id="OFF1", **overrides):
        data = {
            "offer_id": offer_id,
            "title": f"Offer {offer_id}",
            "bank_name": "HDFC",
            "discount_type": "percentage",
            "discount_value": "10",
            "min_amount": "0",
        }
        data.update(overrides)
        return Offer(**data)

    return _make


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def config():
    return OfferEngineConfig()


@pytest.fixture
def engine(config):
    return OfferEngine(store=InMemoryOfferStore(), config=config, setup_logging=False)
