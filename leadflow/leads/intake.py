"""Normalization of customer inquiry payloads into lead sub-records."""

from __future__ import annotations

import math
import re
from typing import Any, Iterable

from leadflow.leads.departments import DEPARTMENT_LABELS, Department, department_from_code

MARKA_PREFIX = "DTC-"
DEFAULT_INITIAL_STATUS = DEPARTMENT_LABELS[Department.SHIPPING]

_WHITESPACE_RE = re.compile(r"\s+")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")

_TYPE_TO_STATUS = {
    "sourcing": DEPARTMENT_LABELS[Department.SOURCING],
    "customer service": DEPARTMENT_LABELS[Department.CUSTOMER_SERVICE],
    "shipping": DEPARTMENT_LABELS[Department.SHIPPING],
}

_SHIPPING_TEXT_VARIANTS: dict[str, tuple[str, ...]] = {
    "itemName": ("itemName", "item", "item name"),
    "hsnCode": ("hsn", "hsnCode", "hsn code", "hsn_code"),
    "shipmentMode": ("shipmentMode", "shipment mode", "mode", "shipment_mode"),
    "uploadInvoice": ("uploadInvoice", "upload invoice", "invoice", "upload_invoice"),
    "uploadPackingList": ("uploadPackingList", "upload packing list", "packing", "packing_list"),
    "marka": ("marka", "mark", "brand", "shippingmark"),
    "remark": ("remark", "shippingRemark", "shipping remark", "note", "notes"),
}

_SHIPPING_NUMBER_VARIANTS: dict[str, tuple[str, ...]] = {
    "totalCTN": ("totalCTN", "total ctn", "ctn", "total_ctn"),
    "totalCBM": ("totalCBM", "total cbm", "cbm", "total_cbm"),
    "totalKG": ("totalKG", "total kg", "kg", "total_kg"),
    "totalValue": ("totalValue", "total value", "value", "total_value"),
    "totalPCS": ("totalPCS", "total pcs", "pcs", "total_pcs"),
    "freightRate": ("freightRate", "freight rate", "freight_rate"),
}


def safe_string(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def safe_number(value: Any) -> float:
    if value is None or value == "" or isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    return number if math.isfinite(number) else 0


def normalize_key(value: str) -> str:
    return _NON_ALNUM_RE.sub("", value.strip().lower())


def map_shipping_info(raw: dict[str, Any] | None) -> dict[str, Any]:
    """Pick shipping fields out of loosely keyed form data.

    Keys are compared after lower-casing and dropping anything that is not a
    letter or digit, so ``"Total CTN"``, ``"total_ctn"`` and ``"ctn"`` all land
    on ``totalCTN``.
    """
    if not isinstance(raw, dict):
        return {}
    normalized = {normalize_key(str(key)): value for key, value in raw.items()}

    def pick(variants: Iterable[str]) -> Any:
        for variant in variants:
            key = normalize_key(variant)
            if key in normalized:
                return normalized[key]
        return None

    mapped: dict[str, Any] = {}
    for field_name, variants in _SHIPPING_TEXT_VARIANTS.items():
        mapped[field_name] = safe_string(pick(variants))
    for field_name, variants in _SHIPPING_NUMBER_VARIANTS.items():
        mapped[field_name] = safe_number(pick(variants))
    return mapped


def clean_upload_urls(values: Any) -> list[str]:
    if not isinstance(values, list):
        return []
    cleaned: list[str] = []
    for value in values:
        text = _WHITESPACE_RE.sub(" ", safe_string(value))
        if text.startswith(("http://", "https://")):
            cleaned.append(text)
    return cleaned


def normalize_products(products: list[dict[str, Any]]) -> list[dict[str, Any]]:
    normalized: list[dict[str, Any]] = []
    for product in products:
        normalized.append(
            {
                "productName": safe_string(product.get("productName", product.get("name"))),
                "quantity": safe_number(product.get("quantity", product.get("qty"))),
                "size": safe_string(product.get("size")),
                "usage": safe_string(product.get("usage")),
                "targetPrice": safe_number(product.get("targetPrice", product.get("price"))),
                "uploadFiles": clean_upload_urls(product.get("uploadFiles")),
                "remark": safe_string(product.get("remark")),
            }
        )
    return normalized


def derive_initial_status(lead_type: str, actor_code: str | None) -> str:
    if department_from_code(actor_code) is Department.CUSTOMER_SERVICE:
        return DEPARTMENT_LABELS[Department.CUSTOMER_SERVICE]
    return _TYPE_TO_STATUS.get(lead_type.strip().lower(), DEFAULT_INITIAL_STATUS)


def marka_base(customer_info: dict[str, Any]) -> str:
    supplied = safe_string(customer_info.get("marka") or customer_info.get("mark"))
    if supplied:
        return supplied
    name = safe_string(customer_info.get("customerName")).upper()
    city = safe_string(customer_info.get("city")).upper()
    if name and city:
        return f"{MARKA_PREFIX}{name[0]}{city[0]}"
    return ""


def marka_pattern(base: str) -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(base)}(\d*)$", re.IGNORECASE)


def next_marka(base: str, contact_number: str, existing: list[tuple[str, str]]) -> str:
    """Pick the marka for a new inquiry.

    ``existing`` holds ``(marka, contactNumber)`` pairs of leads already using
    ``base`` optionally followed by digits. A returning contact keeps the base;
    a different contact gets the next free numeric suffix, the bare base
    counting as 1.
    """
    if not base or not existing:
        return base
    if contact_number and any(contact == contact_number for _, contact in existing):
        return base

    pattern = marka_pattern(base)
    highest = 0
    for marka, _ in existing:
        match = pattern.match(marka)
        if match is None:
            continue
        suffix = match.group(1)
        highest = max(highest, int(suffix) if suffix else 1)
    return f"{base}{highest + 1}"
