"""
Payment Offer Engine

Ingests bank payment offers from loosely shaped upstream JSON, stores them,
and answers "what is the best discount for this payment" queries.
"""

__version__ = "1.0.0"
__author__ = "Offer Engine Team"

from .core import OfferEngine
from .models import DiscountResult, InstrumentSummary, Offer, UpsertResult
from .exceptions import OfferEngineError, ParameterValidationError, StoreFailure, UpstreamFormatError
from .store import InMemoryOfferStore, SQLiteOfferStore

__all__ = [
    "OfferEngine",
    "Offer",
    "DiscountResult",
    "InstrumentSummary",
    "UpsertResult",
    "OfferEngineError",
    "ParameterValidationError",
    "StoreFailure",
    "UpstreamFormatError",
    "InMemoryOfferStore",
    "SQLiteOfferStore",
]
