"""
Offer normalization: raw upstream payloads to canonical Offer records

A payload's top-level shape is not known in advance. Shapes are tried in a fixed
priority order by a chain of extractors; the first one yielding a non-empty list
of entries wins. Each entry is then resolved through the FieldMapper alias table,
classified, coerced and validated on its own, so one bad entry never sinks the batch.
"""

import json
from datetime import datetime
from typing import Any, Callable, List, Optional, Tuple

from dateutil import parser as date_parser
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import PerEntryValidationWarning, UpstreamFormatError
from .field_mapper import FieldMapper
from .models import (
    DiscountType,
    InstrumentToken,
    KnownInstrument,
    Offer,
    OtherInstrument,
    PaymentInstrument,
    coerce_datetime,
    parse_decimal,
    to_utc,
)

# Keyword -> discount type, checked in order against the lowercased raw type
DISCOUNT_TYPE_KEYWORDS: List[Tuple[Tuple[str, ...], DiscountType]] = [
    (("percent", "%"), DiscountType.PERCENTAGE),
    (("flat", "fixed"), DiscountType.FLAT),
    (("cashback",), DiscountType.CASHBACK),
]

# Substring -> instrument, checked in order against the uppercased raw token
INSTRUMENT_KEYWORDS: List[Tuple[Tuple[str, ...], PaymentInstrument]] = [
    (("CREDIT",), PaymentInstrument.CREDIT),
    (("DEBIT",), PaymentInstrument.DEBIT),
    (("EMI",), PaymentInstrument.EMI_OPTIONS),
    (("NET", "BANKING"), PaymentInstrument.NET_BANKING),
    (("UPI",), PaymentInstrument.UPI),
    (("WALLET",), PaymentInstrument.WALLET),
]

_TRUE_STRINGS = {"true", "1", "yes", "y", "on"}
_FALSE_STRINGS = {"false", "0", "no", "n", "off"}


def _list_or_none(value: Any) -> Optional[List[Any]]:
    return value if isinstance(value, list) and value else None


def extract_offers_key(payload: Any) -> Optional[List[Any]]:
    """{"offers": [...]}"""
    if isinstance(payload, dict):
        return _list_or_none(payload.get("offers"))
    return None


def extract_data_offers(payload: Any) -> Optional[List[Any]]:
    """{"data": {"offers": [...]}}"""
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        return _list_or_none(payload["data"].get("offers"))
    return None


def extract_payment_offers(payload: Any) -> Optional[List[Any]]:
    """{"paymentOffers": [...]}"""
    if isinstance(payload, dict):
        return _list_or_none(payload.get("paymentOffers"))
    return None


def extract_bare_list(payload: Any) -> Optional[List[Any]]:
    """[...]"""
    return _list_or_none(payload)


SHAPE_EXTRACTORS: List[Tuple[str, Callable[[Any], Optional[List[Any]]]]] = [
    ("offers", extract_offers_key),
    ("data.offers", extract_data_offers),
    ("paymentOffers", extract_payment_offers),
    ("array", extract_bare_list),
]


class NormalizationResult(BaseModel):
    """Canonical offers that passed validation plus the entries that did not"""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    offers: List[Offer] = Field(default_factory=list)
    rejected: List[PerEntryValidationWarning] = Field(default_factory=list)
    shape: Optional[str] = None
    total_entries: int = 0


class OfferNormalizer:
    """
    Converts shape-ambiguous offer payloads into canonical Offer records
    """

    def __init__(self, field_mapper: Optional[FieldMapper] = None):
        self.logger = logger
        self.field_mapper = field_mapper or FieldMapper()
        self.extractors = list(SHAPE_EXTRACTORS)

    def normalize(self, raw_payload: Any) -> NormalizationResult:
        """
        Normalize one raw payload

        Args:
            raw_payload: JSON text (str/bytes) or an already decoded dict/list

        Returns:
            NormalizationResult with offers in input order

        Raises:
            UpstreamFormatError: if the payload is not a decodable document
        """
        payload = self.decode_payload(raw_payload)
        shape, entries = self.extract_entries(payload)

        result = NormalizationResult(shape=shape, total_entries=len(entries))
        if shape is None:
            self.logger.warning("Unknown offer payload structure, no offers extracted")
            return result

        for index, entry in enumerate(entries):
            try:
                result.offers.append(self.normalize_entry(entry, index))
            except PerEntryValidationWarning as w:
                self.logger.warning(str(w))
                result.rejected.append(w)

        self.logger.info(
            f"Normalized {len(result.offers)} of {len(entries)} offers "
            f"(shape '{shape}', {len(result.rejected)} rejected)"
        )
        return result

    def decode_payload(self, raw_payload: Any) -> Any:
        """Decode JSON text; pass decoded documents through"""
        if isinstance(raw_payload, (dict, list)):
            return raw_payload

        if isinstance(raw_payload, (bytes, bytearray)):
            try:
                raw_payload = raw_payload.decode("utf-8")
            except UnicodeDecodeError as e:
                raise UpstreamFormatError(f"Offer payload is not valid UTF-8: {e}") from e

        if isinstance(raw_payload, str):
            try:
                payload = json.loads(raw_payload)
            except json.JSONDecodeError as e:
                raise UpstreamFormatError(f"Invalid offer payload format: {e}") from e
            if not isinstance(payload, (dict, list)):
                raise UpstreamFormatError(
                    f"Invalid offer payload format: expected an object or array, got {type(payload).__name__}"
                )
            return payload

        raise UpstreamFormatError(f"Invalid offer payload format: unsupported type {type(raw_payload).__name__}")

    def extract_entries(self, payload: Any) -> Tuple[Optional[str], List[Any]]:
        """
        Run the shape extractors in priority order

        Returns:
            (shape name, entries) for the first extractor with a non-empty result,
            or (None, []) when no shape matches
        """
        for name, extractor in self.extractors:
            entries = extractor(payload)
            if entries:
                self.logger.debug(f"Payload matched shape '{name}' with {len(entries)} entries")
                return name, list(entries)
        return None, []

    def normalize_entry(self, entry: Any, index: int = 0) -> Offer:
        """
        Normalize and validate one raw entry

        Raises:
            PerEntryValidationWarning: if the entry cannot become a valid Offer
        """
        if not isinstance(entry, dict):
            raise PerEntryValidationWarning("entry is not an object", index=index)

        fields = self.field_mapper.resolve(entry)
        offer_id = fields["offer_id"] or None

        if not offer_id:
            raise PerEntryValidationWarning("missing offer id", index=index)
        if not fields["title"]:
            raise PerEntryValidationWarning("missing title", offer_id=offer_id, index=index)
        if not fields["bank_name"]:
            raise PerEntryValidationWarning("missing bank name", offer_id=offer_id, index=index)

        discount_value = parse_decimal(fields["discount_value"])
        if discount_value is None or discount_value <= 0:
            raise PerEntryValidationWarning("missing or invalid discount value", offer_id=offer_id, index=index)

        min_amount = parse_decimal(fields["min_amount"])
        max_discount = parse_decimal(fields["max_discount"])
        if max_discount is not None and max_discount == 0:
            max_discount = None

        try:
            valid_from = self.parse_timestamp(fields["valid_from"])
            valid_till = self.parse_timestamp(fields["valid_till"])
        except ValueError as e:
            raise PerEntryValidationWarning(str(e), offer_id=offer_id, index=index) from e

        instruments = [token.token for token in self.classify_instruments(fields["payment_instruments"])]

        try:
            return Offer(
                offer_id=offer_id,
                title=fields["title"],
                description=fields["description"] or None,
                bank_name=fields["bank_name"],
                discount_type=self.classify_discount_type(fields["discount_type"]).value,
                discount_value=discount_value,
                min_amount=min_amount if min_amount is not None else 0,
                max_discount=max_discount,
                payment_instruments=instruments,
                valid_from=valid_from,
                valid_till=valid_till,
                is_active=self.parse_active_flag(fields["is_active"]),
            )
        except ValidationError as e:
            problems = ", ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
            raise PerEntryValidationWarning(problems, offer_id=offer_id, index=index) from e

    @staticmethod
    def classify_discount_type(raw_type: Any) -> DiscountType:
        """Map a free-form discount type onto DiscountType; percentage by default"""
        if raw_type is None:
            return DiscountType.PERCENTAGE
        lowered = str(raw_type).lower()
        for keywords, discount_type in DISCOUNT_TYPE_KEYWORDS:
            if any(keyword in lowered for keyword in keywords):
                return discount_type
        return DiscountType.PERCENTAGE

    def classify_instrument(self, raw_token: Any) -> InstrumentToken:
        """Map one raw instrument token; unknown tokens pass through uppercased"""
        upper = str(raw_token).strip().upper()
        for keywords, instrument in INSTRUMENT_KEYWORDS:
            if any(keyword in upper for keyword in keywords):
                return KnownInstrument(instrument=instrument)
        self.logger.debug(f"Unrecognized payment instrument '{upper}' kept as-is")
        return OtherInstrument(raw=upper)

    def classify_instruments(self, raw_tokens: Any) -> List[InstrumentToken]:
        """Classify a raw instrument list, dropping blanks and duplicates"""
        if not isinstance(raw_tokens, list):
            return []
        tokens: List[InstrumentToken] = []
        seen = set()
        for raw in raw_tokens:
            if raw is None or not str(raw).strip():
                continue
            token = self.classify_instrument(raw)
            if token.token not in seen:
                seen.add(token.token)
                tokens.append(token)
        return tokens

    @staticmethod
    def parse_timestamp(value: Any) -> Optional[datetime]:
        """
        Parse an optional timestamp

        Raises:
            ValueError: if a value is present but cannot be read as a timestamp
        """
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        converted = coerce_datetime(value)
        if converted is not None:
            return converted
        if isinstance(value, str):
            try:
                return to_utc(date_parser.parse(value))
            except (ValueError, OverflowError) as e:
                raise ValueError(f"invalid timestamp '{value}'") from e
        raise ValueError(f"invalid timestamp '{value}'")

    @staticmethod
    def parse_active_flag(value: Any) -> bool:
        if value is None:
            return True
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        lowered = str(value).strip().lower()
        if lowered in _FALSE_STRINGS:
            return False
        if lowered in _TRUE_STRINGS:
            return True
        return bool(lowered)


def normalize_offers(raw_payload: Any) -> List[Offer]:
    """Convenience wrapper returning only the valid canonical offers"""
    return OfferNormalizer().normalize(raw_payload).offers
