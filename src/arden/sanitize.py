# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Masking of sensitive values before they reach logs or stdout.
"""

import re
from typing import Any

SENSITIVE_KEY_PATTERNS = [
    re.compile(r'token$', re.IGNORECASE),
    re.compile(r'secret', re.IGNORECASE),
    re.compile(r'password', re.IGNORECASE),
    re.compile(r'key$', re.IGNORECASE),
    re.compile(r'authorization', re.IGNORECASE),
    re.compile(r'credential', re.IGNORECASE),
]

REDACTED = "[REDACTED]"


def is_sensitive_key(key: str) -> bool:
    """Check if a key name looks like it holds a secret."""
    return any(pattern.search(key) for pattern in SENSITIVE_KEY_PATTERNS)


def mask_value(value: Any) -> str:
    """
    Mask a sensitive value.

    Strings longer than 8 characters keep their first and last 4 characters;
    everything else is fully redacted.
    """
    if not isinstance(value, str) or len(value) <= 8:
        return REDACTED
    return f"{value[:4]}{'*' * (len(value) - 8)}{value[-4:]}"


def sanitize(obj: Any) -> Any:
    """
    Return a deep copy of obj with sensitive fields masked.

    Args:
        obj: Dict, list, or scalar to sanitize

    Returns:
        Sanitized copy; the input is not modified
    """
    if isinstance(obj, dict):
        sanitized = {}
        for key, value in obj.items():
            if isinstance(key, str) and is_sensitive_key(key):
                sanitized[key] = mask_value(value)
            else:
                sanitized[key] = sanitize(value)
        return sanitized

    if isinstance(obj, (list, tuple)):
        return [sanitize(item) for item in obj]

    return obj
