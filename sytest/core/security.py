"""Keeping credentials out of SyTest logs.

Every test user registers with the same password, and every request
carries an access token, either as a query parameter or in a bearer
header. Client traffic logging (``-C``) would otherwise print both.
"""

import re
from typing import Any

REDACTED = "[REDACTED]"

MAX_LOG_MESSAGE_LENGTH = 10000
TRUNCATION_MARKER = "... [TRUNCATED]"

# (pattern, replacement); a replacement of None blanks the whole match
SECRET_PATTERNS: tuple[tuple[re.Pattern[str], str | None], ...] = (
    (re.compile(r"(access_token)=[^&\s'\"]+", re.I), rf"\1={REDACTED}"),
    (
        re.compile(r"(\"(?:access_token|password)\"\s*:\s*)\"[^\"]*\"", re.I),
        rf'\1"{REDACTED}"',
    ),
    (re.compile(r"(bearer)\s+[\w.~+/=-]{8,}", re.I), rf"\1 {REDACTED}"),
    (
        re.compile(r"(password|passwd|pwd)[=:]\s*['\"]?[^\s'\",}]{4,}['\"]?", re.I),
        rf"\1={REDACTED}",
    ),
    # Synapse-issued access tokens
    (re.compile(r"\bsyt_\w{10,}"), None),
)

# Body fields that are never logged
SENSITIVE_KEYS = frozenset(
    {"password", "access_token", "refresh_token", "authorization", "token", "secret"}
)

_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*[a-zA-Z]")


def redact_secrets(text: str) -> str:
    """Replace access tokens and passwords found in ``text``."""
    for pattern, replacement in SECRET_PATTERNS:
        text = pattern.sub(REDACTED if replacement is None else replacement, text)
    return text


def redact_dict_secrets(data: Any, max_depth: int = 8) -> Any:
    """
    Return a copy of a decoded JSON body with credentials blanked.

    Values under ``SENSITIVE_KEYS`` are replaced outright; strings elsewhere
    go through ``redact_secrets``. Nesting below ``max_depth`` is returned
    unchanged.
    """
    if max_depth <= 0:
        return data
    if isinstance(data, dict):
        return {
            key: (
                REDACTED
                if isinstance(key, str) and key.lower() in SENSITIVE_KEYS
                else redact_dict_secrets(value, max_depth - 1)
            )
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [redact_dict_secrets(item, max_depth - 1) for item in data]
    if isinstance(data, str):
        return redact_secrets(data)
    return data


def sanitize_log_message(message: str) -> str:
    """Escape line breaks, drop terminal escapes and cap the length.

    Homeserver output is logged line by line, so an embedded newline or
    colour code would otherwise forge or garble log lines.
    """
    message = message.replace("\r", "\\r").replace("\n", "\\n")
    message = _ANSI_ESCAPE.sub("", message)
    if len(message) > MAX_LOG_MESSAGE_LENGTH:
        keep = MAX_LOG_MESSAGE_LENGTH - len(TRUNCATION_MARKER)
        message = message[:keep] + TRUNCATION_MARKER
    return message
