import re
from typing import Optional


def redact_pii(text: Optional[str], max_length: int = 80) -> str:
    """
    Redact potential Personally Identifiable Information (PII) from text
    before it is written to a log line.

    This function redacts:
    - Email addresses
    - Phone numbers (international and local formats)
    - Long numeric sequences such as verification codes

    The result is truncated to ``max_length`` characters.
    """
    if not text:
        return ""

    # Email addresses
    text = re.sub(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}", "[EMAIL]", text)

    # Phone numbers in various formats
    text = re.sub(
        r"(?:\+\d{1,3}[-. ]?)?\(?\d{3}\)?[-. ]?\d{3}[-. ]?\d{4}\b", "[PHONE]", text
    )

    # Partial numeric sequences that might be sensitive
    text = re.sub(r"\b\d{4,}\b", "[NUMBER]", text)

    if len(text) > max_length:
        text = text[: max_length - 3] + "..."
    return text


def redact_address(address: Optional[str]) -> str:
    """Mask a handle address, keeping only enough to correlate log lines."""
    if not address:
        return "unknown"
    if "@" in address:
        local, _, domain = address.partition("@")
        return f"{local[:1]}***@{domain}"
    digits = re.sub(r"\D", "", address)
    if len(digits) >= 4:
        return f"***{digits[-4:]}"
    return "***"
