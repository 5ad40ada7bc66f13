"""
Tests for offer payload normalization
"""

import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from offer_engine.exceptions import PerEntryValidationWarning, UpstreamFormatError
from offer_engine.field_mapper import FieldMapper
from offer_engine.models import DiscountType, KnownInstrument, OtherInstrument, PaymentInstrument
from offer_engine.normalizer import OfferNormalizer, normalize_offers

ENTRY = {
    "id": "HDFC10",
    "title": "10% off on HDFC cards",
    "bankName": "hdfc",
    "discountType": "percentage",
    "discountValue": 10,
    "minAmount": 1000,
    "maxDiscount": 300,
    "paymentInstruments": ["CREDIT", "EMI_OPTIONS"],
}


@pytest.mark.parametrize(
    "payload, shape",
    [
        ({"offers": [ENTRY]}, "offers"),
        ({"data": {"offers": [ENTRY]}}, "data.offers"),
        ({"paymentOffers": [ENTRY]}, "paymentOffers"),
        ([ENTRY], "array"),
    ],
)
def test_recognized_shapes(payload, shape):
    """Each supported top-level shape yields the same canonical offer"""
    result = OfferNormalizer().normalize(payload)
    assert result.shape == shape
    assert [o.offer_id for o in result.offers] == ["HDFC10"]


def test_empty_list_falls_through_to_next_shape():
    result = OfferNormalizer().normalize({"offers": [], "paymentOffers": [ENTRY]})
    assert result.shape == "paymentOffers"
    assert len(result.offers) == 1


def test_unknown_structure_yields_no_offers():
    result = OfferNormalizer().normalize({"items": [ENTRY]})
    assert result.shape is None
    assert result.offers == []
    assert result.rejected == []


def test_json_text_and_bytes_are_decoded():
    text = json.dumps({"offers": [ENTRY]})
    assert len(normalize_offers(text)) == 1
    assert len(normalize_offers(text.encode("utf-8"))) == 1


@pytest.mark.parametrize("payload", ["{not json", b"\xff\xfe\x00", 42, "null", "42", "\"text\"", b"[1"])
def test_undecodable_payload_raises(payload):
    with pytest.raises(UpstreamFormatError):
        OfferNormalizer().normalize(payload)


def test_aliases_and_classification():
    """Alternate key spellings resolve to canonical fields"""
    entry = {
        "offerId": 123,
        "name": "  Flat 150 off  ",
        "bank": " icici ",
        "type": "FLAT_DISCOUNT",
        "discount": "150",
        "minimum": "500",
        "instruments": ["Credit Card", "emi", "PayLater", "credit"],
        "endDate": "2030-01-01",
    }
    offer = OfferNormalizer().normalize_entry(entry)

    assert offer.offer_id == "123"
    assert offer.title == "Flat 150 off"
    assert offer.bank_name == "ICICI"
    assert offer.discount_type == DiscountType.FLAT.value
    assert offer.discount_value == Decimal("150")
    assert offer.min_amount == Decimal("500")
    assert offer.max_discount is None
    assert offer.payment_instruments == ["CREDIT", "EMI_OPTIONS", "PAYLATER"]
    assert offer.valid_till == datetime(2030, 1, 1, tzinfo=timezone.utc)
    assert offer.is_active is True


def test_first_present_alias_wins():
    mapper = FieldMapper()
    assert mapper.get_field_value({"id": "", "offerId": "B", "offer_id": "C"}, "offer_id") == "B"
    assert mapper.get_field_value({"id": None, "offer_id": "C"}, "offer_id") == "C"
    assert mapper.get_field_value({}, "offer_id") is None



def test_resolve_applies_table_normalizers():
    mapper = FieldMapper([
        {"field": "bank_name", "aliases": ["bank"], "normalize": ["str", "trim", "upper"]},
        {"field": "title", "aliases": ["title"], "normalize": ["lower"]},
        {"field": "discount_value", "aliases": ["value"]},
    ])
    resolved = mapper.resolve({"bank": "  hdfc ", "title": "Mixed Case", "value": 10})

    assert resolved == {"bank_name": "HDFC", "title": "Mixed Case", "discount_value": 10}


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Percentage", DiscountType.PERCENTAGE),
        ("10%", DiscountType.PERCENTAGE),
        ("FIXED", DiscountType.FLAT),
        ("Instant Cashback", DiscountType.CASHBACK),
        ("bogo", DiscountType.PERCENTAGE),
        (None, DiscountType.PERCENTAGE),
    ],
)
def test_classify_discount_type(raw, expected):
    assert OfferNormalizer.classify_discount_type(raw) == expected


def test_classify_instrument_tagged_union():
    normalizer = OfferNormalizer()
    known = normalizer.classify_instrument("net banking")
    other = normalizer.classify_instrument("paylater")

    assert isinstance(known, KnownInstrument)
    assert known.instrument == PaymentInstrument.NET_BANKING
    assert isinstance(other, OtherInstrument)
    assert other.token == "PAYLATER"


def test_non_list_instruments_mean_unrestricted():
    offer = OfferNormalizer().normalize_entry({**ENTRY, "paymentInstruments": "CREDIT"})
    assert offer.payment_instruments == []


@pytest.mark.parametrize(
    "overrides, reason",
    [
        ({"id": None}, "missing offer id"),
        ({"title": ""}, "missing title"),
        ({"bankName": None}, "missing bank name"),
        ({"discountValue": 0}, "missing or invalid discount value"),
        ({"discountValue": "ten"}, "missing or invalid discount value"),
        ({"minAmount": -5}, "min_amount"),
        ({"validTill": "not a date"}, "invalid timestamp"),
    ],
)
def test_invalid_entries_are_rejected(overrides, reason):
    entry = {**ENTRY, **overrides}
    with pytest.raises(PerEntryValidationWarning) as exc_info:
        OfferNormalizer().normalize_entry(entry, index=3)
    assert reason in exc_info.value.reason


def test_bad_entries_do_not_sink_the_batch():
    payload = {"offers": [ENTRY, "garbage", {**ENTRY, "id": "X2", "discountValue": None}, {**ENTRY, "id": "OK2"}]}
    result = OfferNormalizer().normalize(payload)

    assert [o.offer_id for o in result.offers] == ["HDFC10", "OK2"]
    assert len(result.rejected) == 2
    assert result.total_entries == 4
    assert result.rejected[0].index == 1
    assert result.rejected[1].offer_id == "X2"


def test_zero_max_discount_means_uncapped():
    offer = OfferNormalizer().normalize_entry({**ENTRY, "maxDiscount": 0})
    assert offer.max_discount is None


@pytest.mark.parametrize("raw, expected", [("false", False), ("0", False), (0, False), ("yes", True), (None, True)])
def test_active_flag(raw, expected):
    offer = OfferNormalizer().normalize_entry({**ENTRY, "isActive": raw})
    assert offer.is_active is expected


def test_normalization_is_deterministic():
    payload = json.dumps({"offers": [ENTRY, {**ENTRY, "id": "B", "validFrom": "2025-01-01T05:30:00+05:30"}]})
    first = normalize_offers(payload)
    second = normalize_offers(payload)
    assert [o.model_dump() for o in first] == [o.model_dump() for o in second]
    assert first[1].valid_from == datetime(2025, 1, 1, 0, 0, tzinfo=timezone.utc)
