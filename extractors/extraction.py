#!/usr/bin/env python3
"""
Regex extraction of contact details and monetary amounts from message text.
"""

import re
import logging
from typing import Any, Dict, List, Optional

from models import ExtractedInfo

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"[\w.-]+@[\w.-]+\.\w+")
PHONE_PATTERN = re.compile(
    r"(?<!\d)(?:"
    r"(?:\+55\s?)?\(?\d{2}\)?\s?\d{4,5}[-\s]?\d{4}"  # with area code
    r"|\d{4,5}[-\s]\d{4}"  # local number, separator required
    r")(?!\d)"
)
MONEY_PATTERN = re.compile(r"R\$\s?\d+(?:[.,]\d{3})*(?:[.,]\d{2})?")
PERCENT_PATTERN = re.compile(r"\d+(?:[.,]\d+)?%")


def parse_brl_amount(raw: str) -> Optional[float]:
    """
    Parse a Brazilian-formatted amount such as "R$ 1.234,56" or "1500".

    The right-most separator is the decimal one when it is followed by one or
    two digits; every other separator groups thousands.
    """
    digits = re.sub(r"[^\d.,]", "", raw or "")
    if not digits:
        return None

    last_sep = max(digits.rfind(","), digits.rfind("."))
    if last_sep != -1 and 1 <= len(digits) - last_sep - 1 <= 2:
        integer = re.sub(r"[.,]", "", digits[:last_sep])
        decimals = digits[last_sep + 1:]
        number = f"{integer or '0'}.{decimals}"
    else:
        number = re.sub(r"[.,]", "", digits)

    try:
        return float(number)
    except ValueError:
        return None


def _strip_money(text: str) -> str:
    """Blank out currency amounts so their digits are not read as phone numbers"""
    return MONEY_PATTERN.sub(" ", text)


def extract_information(text: str) -> ExtractedInfo:
    """
    Extract emails, phones, currency amounts and percentages.

    Returns:
        ExtractedInfo; empty on malformed input
    """
    try:
        text = text or ""
        money = MONEY_PATTERN.findall(text)
        values = [v for v in (parse_brl_amount(m) for m in money) if v is not None]
        return ExtractedInfo(
            emails=EMAIL_PATTERN.findall(text),
            phones=PHONE_PATTERN.findall(_strip_money(text)),
            money=money,
            values=values,
            percentages=PERCENT_PATTERN.findall(text),
        )
    except (TypeError, re.error) as e:
        logger.error(f"Information extraction failed: {str(e)}")
        return ExtractedInfo()


def value_stats(values: List[float]) -> Dict[str, Any]:
    """max / min / avg of extracted amounts"""
    if not values:
        return {"max_value": None, "min_value": None, "avg_value": None, "has_money_mention": False}
    return {
        "max_value": max(values),
        "min_value": min(values),
        "avg_value": round(sum(values) / len(values), 2),
        "has_money_mention": True,
    }


def merge_extractions(items: List[ExtractedInfo]) -> ExtractedInfo:
    """Union of several extractions, keeping first-seen order without duplicates"""
    merged = ExtractedInfo()
    for item in items:
        for attr in ("emails", "phones", "money", "percentages"):
            target = getattr(merged, attr)
            target.extend(v for v in getattr(item, attr) if v not in target)
        merged.values.extend(item.values)
    return merged
