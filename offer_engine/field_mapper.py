"""
Field mapping utilities for the offer engine

This module provides the FieldMapper class which handles:
- The static alias table from canonical offer fields to upstream key names
- Extracting field values from raw offer entries (first present alias wins)
- Applying normalization functions to extracted values
"""

from typing import Any, Dict, List, Optional

from loguru import logger

# Canonical field -> ordered upstream aliases and normalizers.
# The table is consulted once per raw entry; order matters.
OFFER_FIELD_MAPPINGS: List[Dict[str, Any]] = [
    {"field": "offer_id", "aliases": ["id", "offerId", "offer_id"], "normalize": ["str", "trim"]},
    {"field": "title", "aliases": ["title", "name", "offerTitle"], "normalize": ["str", "trim"]},
    {"field": "description", "aliases": ["description", "desc", "details"], "normalize": ["str", "trim"]},
    {"field": "bank_name", "aliases": ["bankName", "bank", "bank_name"], "normalize": ["str", "trim", "upper"]},
    {"field": "discount_type", "aliases": ["discountType", "type"], "normalize": ["str", "trim"]},
    {"field": "discount_value", "aliases": ["discountValue", "discount", "value"]},
    {"field": "min_amount", "aliases": ["minAmount", "minimum", "min_amount"]},
    {"field": "max_discount", "aliases": ["maxDiscount", "maximum", "max_discount"]},
    {"field": "payment_instruments", "aliases": ["paymentInstruments", "instruments", "payment_methods"]},
    {"field": "valid_from", "aliases": ["validFrom", "startDate"]},
    {"field": "valid_till", "aliases": ["validTill", "endDate", "expiryDate"]},
    {"field": "is_active", "aliases": ["isActive", "active"]},
]


class FieldMapper:
    """
    Resolves canonical offer fields from raw upstream entries
    """

    def __init__(self, mappings: Optional[List[Dict[str, Any]]] = None):
        """
        Initialize the field mapper

        Args:
            mappings: Alias table to use. If None, uses OFFER_FIELD_MAPPINGS.
        """
        self.logger = logger
        table = mappings if mappings is not None else OFFER_FIELD_MAPPINGS
        self.mappings = {m["field"]: m for m in table}

    def get_field_value(self, entry: Dict[str, Any], field: str) -> Optional[Any]:
        """
        Get the value of a canonical field from a raw entry

        Args:
            entry: Raw offer entry
            field: Canonical field name

        Returns:
            Normalized value of the first present alias, or None if none is present
        """
        mapping = self.mappings.get(field)
        if mapping is None:
            self.logger.warning(f"Field '{field}' not found in mapping configuration")
            return None

        for alias in mapping["aliases"]:
            value = entry.get(alias)
            if self._is_present(value):
                return self._apply_normalization(value, mapping.get("normalize", []))

        return None

    def resolve(self, entry: Dict[str, Any]) -> Dict[str, Any]:
        """
        Resolve every mapped canonical field for one raw entry

        Args:
            entry: Raw offer entry

        Returns:
            Dictionary of canonical field -> value (None when absent)
        """
        return {field: self.get_field_value(entry, field) for field in self.mappings}

    @staticmethod
    def _is_present(value: Any) -> bool:
        if value is None:
            return False
        if isinstance(value, str) and value == "":
            return False
        return True

    def _apply_normalization(self, value: Any, normalize_funcs: List[str]) -> Any:
        """
        Apply normalization functions to a value

        Args:
            value: Value to normalize
            normalize_funcs: List of normalization function names

        Returns:
            Normalized value
        """
        result = value
        for func_name in normalize_funcs:
            result = self._apply_single_normalization(result, func_name)
        return result

    def _apply_single_normalization(self, value: Any, func_name: str) -> Any:
        if func_name == "str":
            return value if isinstance(value, str) else str(value)
        elif func_name == "trim":
            return value.strip() if isinstance(value, str) else value
        elif func_name == "upper":
            return value.upper() if isinstance(value, str) else value
        else:
            self.logger.warning(f"Unknown normalization function: {func_name}")
            return value
