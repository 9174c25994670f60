"""
Parsing of the fractional Unix timestamps found in plan execution stats,
e.g. "1610000000.123456789".
"""

import re

from .errors import MalformedTimestamp

NANOS_PER_SECOND = 1_000_000_000
FRACTION_PRECISION = 9

_SECONDS_RE = re.compile(r"[+-]?[0-9]+")
_FRACTION_RE = re.compile(r"[0-9]*")


def parse_fractional_timestamp(s: str) -> int:
    """
    Parse `<seconds>.<fraction>` into nanoseconds since the Unix epoch (UTC).

    The fraction may have up to 9 digits and is right-padded with zeros,
    so "1.5" is 1.5 seconds. Raises MalformedTimestamp on any other input.
    """
    if not isinstance(s, str):
        raise MalformedTimestamp(repr(s), "not a string")
    if "." not in s:
        raise MalformedTimestamp(s, "missing '.' separator")

    sec_str, frac_str = s.split(".", 1)
    if not _SECONDS_RE.fullmatch(sec_str):
        raise MalformedTimestamp(s, "seconds part is not an integer")
    if len(frac_str) > FRACTION_PRECISION:
        raise MalformedTimestamp(
            s,
            f"fraction part should be shorter than or equal to {FRACTION_PRECISION} digits, "
            f"actual: {len(frac_str)}",
        )
    if not _FRACTION_RE.fullmatch(frac_str):
        raise MalformedTimestamp(s, "fraction part is not an integer")

    nanos = int(frac_str.ljust(FRACTION_PRECISION, "0"))
    return int(sec_str) * NANOS_PER_SECOND + nanos
