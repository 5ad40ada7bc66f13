"""
Custom exceptions for the Offer Engine
"""

from typing import List, Optional


class OfferEngineError(Exception):
    """Base exception for all offer engine errors"""
    pass


class UpstreamFormatError(OfferEngineError):
    """Raised when a raw offer payload cannot be decoded at all"""
    pass


class StoreFailure(OfferEngineError):
    """Raised when the offer store fails; the running batch is rolled back"""
    pass


class ComputationError(OfferEngineError):
    """Raised when discount computation fails"""
    pass


class EligibilityError(OfferEngineError):
    """Raised when eligibility checking fails"""
    pass


class OfferNotFoundError(OfferEngineError):
    """Raised when an admin operation targets an unknown offer"""

    def __init__(self, offer_id: str):
        self.offer_id = offer_id
        super().__init__(f"Offer not found: {offer_id}")


class ParameterValidationError(OfferEngineError):
    """
    Raised when request parameters are invalid.

    Carries every violation found, not just the first one.
    """

    def __init__(self, errors: List[str], message: str = "Validation failed"):
        self.errors = list(errors)
        super().__init__(f"{message}: {'; '.join(self.errors)}" if self.errors else message)


class OfferEngineWarning(UserWarning):
    """Base class for recoverable conditions that are logged, never raised"""
    pass


class PerEntryValidationWarning(OfferEngineWarning):
    """An offer entry was dropped during normalization"""

    def __init__(self, reason: str, offer_id: Optional[str] = None, index: Optional[int] = None):
        self.reason = reason
        self.offer_id = offer_id
        self.index = index
        label = offer_id if offer_id else f"entry #{index}"
        super().__init__(f"Skipping offer {label}: {reason}")


class UnknownDiscountTypeWarning(OfferEngineWarning):
    """An offer carries a discount type the calculator does not know"""

    def __init__(self, discount_type: str, offer_id: Optional[str] = None):
        self.discount_type = discount_type
        self.offer_id = offer_id
        super().__init__(f"Unknown discount type '{discount_type}' on offer {offer_id}; using 0")
