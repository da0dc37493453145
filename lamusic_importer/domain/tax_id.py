from __future__ import annotations

import re


_NON_DIGITS = re.compile(r"[^0-9]")

_FIRST_WEIGHTS = (5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2)
_SECOND_WEIGHTS = (6, 5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2)


def normalize_tax_id(value: str | None) -> str:
    return _NON_DIGITS.sub("", str(value or ""))


def _check_digit(digits: str, weights: tuple[int, ...]) -> int:
    total = sum(int(digit) * weight for digit, weight in zip(digits, weights))
    remainder = total % 11
    return 0 if remainder < 2 else 11 - remainder


def is_valid_tax_id(value: str | None) -> bool:
    """CNPJ check: 14 digits, not a repeated digit, both mod-11 check digits."""
    digits = normalize_tax_id(value)
    if len(digits) != 14:
        return False
    if len(set(digits)) == 1:
        return False
    if _check_digit(digits[:12], _FIRST_WEIGHTS) != int(digits[12]):
        return False
    return _check_digit(digits[:13], _SECOND_WEIGHTS) == int(digits[13])


def format_tax_id(value: str | None) -> str:
    digits = normalize_tax_id(value)
    if len(digits) != 14:
        return digits
    return f"{digits[:2]}.{digits[2:5]}.{digits[5:8]}/{digits[8:12]}-{digits[12:]}"
