#!/usr/bin/env python3
"""Camera address resolution"""

import re

from .errors import InvalidAddressError

_SUFFIX_RE = re.compile(r'^[0-9]{1,3}$')
_DOTTED_QUAD_RE = re.compile(r'^([0-9]{1,3}\.){3}[0-9]{1,3}$')


def resolve_address(value: str, prefix: str = "192.168.0.") -> str:
    """
    Turn the positional camera argument into an IPv4 address.

    Args:
        value: Either a full dotted-quad address or the last 1-3 digits
        prefix: Prepended to a bare suffix (must end with a dot)

    Returns:
        The address to connect to. Full addresses are returned verbatim.

    Raises:
        InvalidAddressError: if the value is neither form or out of range
    """
    value = value.strip()

    if _SUFFIX_RE.match(value):
        if not 0 <= int(value) <= 255:
            raise InvalidAddressError(
                "Error: The last three digits of the IP should be between 0 and 255."
            )
        return f"{prefix}{int(value)}"

    if _DOTTED_QUAD_RE.match(value):
        if all(int(octet) <= 255 for octet in value.split('.')):
            return value

    raise InvalidAddressError(
        f"Error: Invalid input '{value}'. Please provide either the last 3 digits "
        "(0-255) or a full IP address."
    )
