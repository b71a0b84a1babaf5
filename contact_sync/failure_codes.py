"""Shared sink failure code constants for create-request classification."""

RATE_LIMIT_CODES = frozenset(
    {
        "rate_limited",
    }
)

# Failures that will recur on every attempt; these records are dead-lettered.
NON_RETRYABLE_CODES = frozenset(
    {
        "validation_error",
        "invalid_json",
        "invalid_request",
        "invalid_request_url",
    }
)


def is_rate_limited(code: str) -> bool:
    return code in RATE_LIMIT_CODES


def is_retryable(code: str) -> bool:
    return code not in NON_RETRYABLE_CODES
