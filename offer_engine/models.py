"""
Data models for the Offer Engine
"""

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .exceptions import ParameterValidationError


class DiscountType(str, Enum):
    """Pricing rule class deciding how discount_value is read"""

    PERCENTAGE = "percentage"
    FLAT = "flat"
    CASHBACK = "cashback"


class PaymentInstrument(str, Enum):
    """Canonical payment instrument tokens"""

    CREDIT = "CREDIT"
    DEBIT = "DEBIT"
    EMI_OPTIONS = "EMI_OPTIONS"
    NET_BANKING = "NET_BANKING"
    UPI = "UPI"
    WALLET = "WALLET"


VALID_INSTRUMENTS = [i.value for i in PaymentInstrument]


def parse_decimal(value: Any) -> Optional[Decimal]:
    """
    Convert a loosely typed number to Decimal.

    Returns None for missing, blank, boolean, NaN, infinite or non-numeric input.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and pd.isna(value):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not result.is_finite():
        return None
    return result


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Make a datetime timezone-aware in UTC; naive values are taken as UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CamelModel(BaseModel):
    """Snake_case attributes, camelCase on the wire"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class KnownInstrument(BaseModel):
    """Instrument token that maps onto the canonical vocabulary"""

    model_config = ConfigDict(frozen=True)

    kind: Literal["known"] = "known"
    instrument: PaymentInstrument

    @property
    def token(self) -> str:
        return self.instrument.value


class OtherInstrument(BaseModel):
    """Instrument token outside the vocabulary, kept uppercased as received"""

    model_config = ConfigDict(frozen=True)

    kind: Literal["other"] = "other"
    raw: str

    @property
    def token(self) -> str:
        return self.raw


InstrumentToken = Annotated[Union[KnownInstrument, OtherInstrument], Field(discriminator="kind")]


class Offer(CamelModel):
    """Canonical offer record"""

    offer_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: Optional[str] = None
    bank_name: str = Field(min_length=1)

    discount_type: str = DiscountType.PERCENTAGE.value
    discount_value: Decimal = Field(gt=0)
    min_amount: Decimal = Field(default=Decimal("0"), ge=0)
    max_discount: Optional[Decimal] = Field(default=None, gt=0)

    # Empty list means the offer is not restricted to any instrument
    payment_instruments: List[str] = Field(default_factory=list)

    valid_from: Optional[datetime] = None
    valid_till: Optional[datetime] = None
    is_active: bool = True

    @field_validator("bank_name", mode="before")
    @classmethod
    def upper_bank_name(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("discount_type", mode="before")
    @classmethod
    def normalize_discount_type(cls, v):
        if isinstance(v, Enum):
            v = v.value
        if v is None:
            return DiscountType.PERCENTAGE.value
        return str(v).strip().lower()

    @field_validator("payment_instruments", mode="before")
    @classmethod
    def upper_instruments(cls, v):
        if v is None:
            return []
        if isinstance(v, (list, tuple, set)):
            tokens = []
            for item in v:
                token = str(item.value if isinstance(item, Enum) else item).strip().upper()
                if token and token not in tokens:
                    tokens.append(token)
            return tokens
        return v

    @field_validator("valid_from", "valid_till", mode="after")
    @classmethod
    def force_utc(cls, v):
        return to_utc(v)

    def accepts_instrument(self, instrument: str) -> bool:
        if not self.payment_instruments:
            return True
        return instrument.strip().upper() in {i.upper() for i in self.payment_instruments}


class RequestContext(CamelModel):
    """Per-query context: what is paid, with which bank and instrument"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    amount_to_pay: Decimal = Field(gt=0)
    bank_name: str = Field(min_length=1)
    payment_instrument: PaymentInstrument

    @classmethod
    def from_params(cls, amount_to_pay: Any, bank_name: Any, payment_instrument: Any) -> "RequestContext":
        """
        Build a context from raw request parameters

        Raises:
            ParameterValidationError: listing every invalid parameter
        """
        errors = validate_discount_params(amount_to_pay, bank_name, payment_instrument)
        if errors:
            raise ParameterValidationError(errors)
        return cls(
            amount_to_pay=parse_decimal(amount_to_pay),
            bank_name=str(bank_name).strip(),
            payment_instrument=PaymentInstrument(str(payment_instrument).strip().upper()),
        )


def validate_amount(amount_to_pay: Any) -> List[str]:
    amount = parse_decimal(amount_to_pay)
    if amount is None or amount <= 0:
        return ["Amount to pay must be greater than 0"]
    return []


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and pd.isna(value):
        return True
    return not str(value).strip()


def validate_bank_name(bank_name: Any) -> List[str]:
    if _is_missing(bank_name):
        return ["Bank name is required"]
    return []


def validate_instrument(payment_instrument: Any, required: bool = True) -> List[str]:
    if _is_missing(payment_instrument):
        return ["Payment instrument is required"] if required else []
    if str(payment_instrument).strip().upper() not in VALID_INSTRUMENTS:
        return [f"Invalid payment instrument. Valid options: {', '.join(VALID_INSTRUMENTS)}"]
    return []


def validate_discount_params(amount_to_pay: Any, bank_name: Any, payment_instrument: Any) -> List[str]:
    """Collect all violations for a discount query"""
    return (
        validate_amount(amount_to_pay)
        + validate_bank_name(bank_name)
        + validate_instrument(payment_instrument)
    )


class OfferSummary(CamelModel):
    """Best offer as reported in a discount result"""

    offer_id: str
    title: str
    bank_name: str
    discount_type: str
    discount_value: Decimal
    max_discount: Optional[Decimal] = None


class AlternativeOffer(CamelModel):
    """Runner-up offer with its computed outcome"""

    offer_id: str
    title: str
    discount_amount: Decimal
    final_amount: Decimal


class DiscountResult(CamelModel):
    """Outcome of a best-discount query"""

    highest_discount: Decimal = Decimal("0")
    final_amount: Decimal
    applicable_offer: Optional[OfferSummary] = None
    alternative_offers: List[AlternativeOffer] = Field(default_factory=list)
    message: str


class InstrumentSummary(CamelModel):
    """One row of the per-instrument discount summary"""

    discount: Decimal
    final_amount: Decimal
    offer_title: str


class UpsertResult(CamelModel):
    """Counts reported by an ingestion or bulk upsert"""

    saved_count: int = 0
    updated_count: int = 0
    total_processed: int = 0
    rejected_count: int = 0


class RankedOffer(BaseModel):
    """Offer decorated with its computed discount and original position"""

    offer: Offer
    discount_amount: Decimal
    final_amount: Decimal
    position: int


def coerce_datetime(value: Any) -> Optional[datetime]:
    """Accept datetime or date objects; anything else is left to the caller"""
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    return None
