"""Tax ID (RUT) extraction and normalization."""

import re

# 12.345.678-9, 12345678-9, 123456789, 7.654.321-K
TAX_ID_PATTERN = re.compile(r"(\d{1,2}\.?\d{3}\.?\d{3}-?[0-9K])")


def normalize_tax_id(value: str | None) -> str:
    """Strip punctuation and upper-case a tax ID."""
    if not value:
        return ""
    return re.sub(r"[.\-]", "", value).upper()


def extract_tax_id(text: str | None) -> str | None:
    """Find the first tax-ID-shaped token in free text, normalized."""
    if not text:
        return None

    match = TAX_ID_PATTERN.search(text.upper())
    if match is None:
        return None
    return normalize_tax_id(match.group(1))
