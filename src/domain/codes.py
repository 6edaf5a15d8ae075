"""
One-time code generation and destination masking.

Pure helpers used by the registration service. Codes come from the
`secrets` module so they cannot be predicted from earlier outputs.
"""

import secrets

MIN_CODE_LENGTH = 6
_DIGITS = "0123456789"
_MASK = "***"


def generate_code(length: int = MIN_CODE_LENGTH) -> str:
    """
    Generate a cryptographically secure numeric one-time code.

    Each digit is drawn independently, so every string in
    [000000, 999999] (for the default width) is equally likely.
    Returns a string to preserve leading zeros.

    Raises:
        ValueError: If length is below the minimum width
    """
    if length < MIN_CODE_LENGTH:
        raise ValueError(f"Code length must be at least {MIN_CODE_LENGTH}, got {length}")
    return "".join(secrets.choice(_DIGITS) for _ in range(length))


def mask_email(address: str) -> str:
    """
    Partially redact an email address for client-facing display.

    Keeps the first two characters of the local part and the whole
    domain: "john@example.com" -> "jo***@example.com". Input without
    an "@" (or empty input) is masked entirely. Never raises.
    """
    text = "" if address is None else str(address)
    local, sep, domain = text.rpartition("@")
    if not sep or not local:
        return _MASK
    return f"{local[:2]}{_MASK}@{domain}"
