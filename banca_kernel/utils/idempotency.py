"""Idempotency key validation."""

from banca_kernel.exceptions import ValidationError

IDEMPOTENCY_KEY_MAX_LENGTH = 50


def validate_idempotency_key(key: str | None) -> str:
    """
    Return the key unchanged when it is usable.

    Raises:
        ValidationError: If the key is missing, blank, or longer than 50 chars.
    """
    if not isinstance(key, str) or not key.strip():
        raise ValidationError("idempotency_key", "is required")
    if len(key) > IDEMPOTENCY_KEY_MAX_LENGTH:
        raise ValidationError(
            "idempotency_key",
            f"must be at most {IDEMPOTENCY_KEY_MAX_LENGTH} characters",
        )
    return key
