import re

_NON_DIGITS = re.compile(r"\D")
_LEADING_ZEROS = re.compile(r"^0+")


def normalize_phone_number(raw: str | None) -> str:
    """Reduce a phone number to the provider's canonical digit-only form.

    Non-digits are removed and leading zeros stripped. A number made only of
    zeros is returned as its digits rather than as an empty string.

    >>> normalize_phone_number("073-146-26705")
    '7314626705'
    """
    if not raw:
        return ""
    digits = _NON_DIGITS.sub("", raw)
    return _LEADING_ZEROS.sub("", digits) or digits
