# backend/virtual_line/utils/phone.py
"""
US phone normalization to E.164 ("+1XXXXXXXXXX").

Accepts 10 digits, 11 digits starting with 1, or already-normalized
+1 numbers; punctuation is ignored. Anything else is not a phone.
"""

import re
from typing import Optional

_NON_DIGITS = re.compile(r"\D")


def digits_only(value: str) -> str:
    return _NON_DIGITS.sub("", value or "")


def normalize_phone(value: Optional[str]) -> Optional[str]:
    """Return "+1XXXXXXXXXX" or None if value is not a US phone number."""
    digits = digits_only(value or "")
    if len(digits) == 10:
        return "+1" + digits
    if len(digits) == 11 and digits.startswith("1"):
        return "+" + digits
    return None
