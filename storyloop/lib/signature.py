"""
Failure signature normalization.

Stuck detection compares the normalized error text of consecutive failed
attempts. What counts as "the same failure" is fuzzy, so normalizers are
registered by name and picked through SIGNATURE_NORMALIZER.

    exact            strip surrounding whitespace only
    default          drop ANSI codes, timestamps, hex addresses, durations;
                     collapse whitespace; lowercase
    strip_locations  default, plus file:line:col and "line N" removed
"""

import re
from typing import Callable

Normalizer = Callable[[str], str]

MAX_SIGNATURE_LENGTH = 500

_ANSI = re.compile(r'\x1b\[[0-9;]*[A-Za-z]')
_TIMESTAMP = re.compile(r'\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:?\d{2})?')
_HEX_ADDR = re.compile(r'0x[0-9a-fA-F]+')
_DURATION = re.compile(r'\b\d+(?:\.\d+)?\s?(?:ms|s)\b')
_WHITESPACE = re.compile(r'\s+')
_LOCATION = re.compile(r'(?:[\w./\\-]+)?[:(]\d+(?:[:,]\d+)?\)?')
_LINE_WORD = re.compile(r'\bline \d+\b', re.IGNORECASE)


def exact(text: str) -> str:
    return text.strip()


def default(text: str) -> str:
    text = _ANSI.sub('', text)
    text = _TIMESTAMP.sub('<ts>', text)
    text = _HEX_ADDR.sub('<addr>', text)
    text = _DURATION.sub('<dur>', text)
    text = _WHITESPACE.sub(' ', text).strip().lower()
    return text[:MAX_SIGNATURE_LENGTH]


def strip_locations(text: str) -> str:
    text = _ANSI.sub('', text)
    text = _TIMESTAMP.sub('<ts>', text)
    text = _LOCATION.sub('', text)
    text = _LINE_WORD.sub('', text)
    return default(text)


NORMALIZERS: dict[str, Normalizer] = {
    "exact": exact,
    "default": default,
    "strip_locations": strip_locations,
}


def get_normalizer(name: str) -> Normalizer:
    """Look up a normalizer by name. Raises KeyError for unknown names."""
    return NORMALIZERS[name]


def register_normalizer(name: str, func: Normalizer) -> None:
    """Add a custom normalizer (e.g. from a plugin or a test)."""
    NORMALIZERS[name] = func


def trailing_repeats(signatures: list[str]) -> int:
    """Count how many entries at the end of the list equal the last one."""
    if not signatures:
        return 0
    last = signatures[-1]
    count = 0
    for sig in reversed(signatures):
        if sig != last:
            break
        count += 1
    return count
