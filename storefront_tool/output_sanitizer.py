"""Output sanitization — redact credentials before returning text, and turn backend errors into short user-safe messages."""
import re

from .errors import CommerceAPIError, StorefrontError

# Credential patterns
_CREDENTIAL_PATTERNS = [
    re.compile(r"(?i)(api[_-]?key|secret|password|token)\s*[=:]\s*\S+"),
    re.compile(r"(?i)bearer\s+[a-z0-9._\-]+"),
    re.compile(r"pk_[a-zA-Z0-9]{20,}"),       # publishable keys
    re.compile(r"sk-[a-zA-Z0-9]{20,}"),
    re.compile(r"eyJ[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+"),  # JWTs
]

# Credit card number patterns (13-19 digits, optionally separated)
_CARD_NUMBER_PATTERN = re.compile(
    r"\b(?:\d{4}[-\s]?){3,4}\d{1,4}\b"
)

# ANSI escape codes
_ANSI_PATTERN = re.compile(r"\x1b\[[0-9;]*m")

GENERIC_ERROR = "Something went wrong. Please try again."
MAX_MESSAGE_CHARS = 200

_INVENTORY_MARKERS = (
    "insufficient_inventory",
    "insufficient inventory",
    "not enough stock",
    "out of stock",
    "does not have the required inventory",
    "inventory",
)

# Backend plumbing phrases -> what the shopper should read
_NOISY_PHRASES = [
    ("sales channel", "This product isn't available in this store."),
    ("stock location", "This item can't be shipped to your address right now."),
    ("variant not found", "This product is no longer available."),
    ("variant does not exist", "This product is no longer available."),
    ("already completed", "This order has already been placed."),
    ("cart is completed", "This order has already been placed."),
]

_ALREADY_COMPLETED_MARKERS = ("already completed", "cart is completed", "cart completed")


def redact_email(email: str) -> str:
    """Partially redact an email address."""
    if "@" not in email:
        return email
    local, domain = email.split("@", 1)
    return f"{local[0]}***@{domain}"


def sanitize_output(text: str, max_chars: int = 50000) -> str:
    """
    Sanitize text before returning it from a tool.

    - Strips ANSI escape codes
    - Redacts credential patterns (auth tokens, keys)
    - Redacts credit card numbers
    - Truncates to max_chars
    """
    text = _ANSI_PATTERN.sub("", text)

    for pattern in _CREDENTIAL_PATTERNS:
        text = pattern.sub("[REDACTED]", text)

    text = _CARD_NUMBER_PATTERN.sub("[CARD REDACTED]", text)

    if len(text) > max_chars:
        text = text[:max_chars] + f"\n\n[... truncated at {max_chars} chars]"

    return text


def _error_text(error: BaseException) -> str:
    if isinstance(error, StorefrontError):
        return error.message
    return str(error)


def is_inventory_error(error: BaseException) -> bool:
    code = str(getattr(error, "code", "") or "").lower()
    text = f"{code} {_error_text(error)}".lower()
    return any(marker in text for marker in _INVENTORY_MARKERS)


def is_cart_already_completed(error: BaseException) -> bool:
    if isinstance(error, CommerceAPIError) and error.status == 409:
        return True
    text = _error_text(error).lower()
    return any(marker in text for marker in _ALREADY_COMPLETED_MARKERS)


def user_facing_message(error: BaseException | str | None, fallback: str = GENERIC_ERROR) -> str:
    """Short, shopper-safe description of an error."""
    if error is None:
        return fallback
    if isinstance(error, str):
        message = error.strip()
        return message if message and len(message) <= MAX_MESSAGE_CHARS else fallback

    if isinstance(error, CommerceAPIError):
        message = error.message.strip()
        lowered = message.lower()
        if is_inventory_error(error):
            return "This item is out of stock."
        for phrase, replacement in _NOISY_PHRASES:
            if phrase in lowered:
                return replacement
        status = error.status
        if status is None:
            return "We couldn't reach the store. Check your connection and try again."
        if status == 401:
            return "Your session has expired. Please log in again."
        if status == 403:
            return "You don't have permission to do that."
        if status == 404:
            return "This content isn't available."
        if status >= 500:
            return "Something went wrong on our side. Please try again."
        if status == 409 and not message:
            return "This action can't be completed right now."
        if not message or len(message) > MAX_MESSAGE_CHARS:
            return "Please check your input and try again." if status == 400 else fallback
        return message

    message = _error_text(error).strip()
    if not message or len(message) > MAX_MESSAGE_CHARS:
        return fallback
    return message
