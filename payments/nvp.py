"""
NVP (name-value pair) codec for PayPal's classic API.

Requests are plain form-encoded bodies. Replies are form-encoded too, but
PayPal may HTML-escape parts of them, so entities are decoded before parsing.
"""

import html
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Union
from urllib.parse import parse_qsl, urlencode

# Only terminated entities (&amp; &#39; &#x27;): bare "&NAME" is a field separator
_ENTITY_RE = re.compile(r"&(?:#[0-9]+|#[xX][0-9a-fA-F]+|[A-Za-z][A-Za-z0-9]*);")

_CENTS = Decimal("0.01")


def encode(mapping: Mapping[str, object]) -> str:
    """Form-encode an NVP message, keeping the mapping's key order."""
    return urlencode([(str(k), "" if v is None else str(v)) for k, v in mapping.items()])


def unescape_entities(raw: str) -> str:
    return _ENTITY_RE.sub(lambda m: html.unescape(m.group(0)), raw)


def decode(raw: Union[str, bytes, None], encoding: str = "utf-8") -> dict[str, str]:
    """Parse an NVP body into a flat dict. Malformed input never raises."""
    if not raw:
        return {}
    if isinstance(raw, bytes):
        # Percent-escapes are ASCII; non-ASCII bytes only appear in broken bodies
        raw = raw.decode("latin-1")
    try:
        pairs = parse_qsl(
            unescape_entities(raw.strip()),
            keep_blank_values=True,
            encoding=encoding,
            errors="replace",
        )
    except (LookupError, ValueError):
        # Unknown charset name: fall back to the default
        pairs = parse_qsl(unescape_entities(raw.strip()), keep_blank_values=True)
    return {key: value for key, value in pairs if key}


def format_amount(amount: Union[Decimal, int, str, float]) -> str:
    """Format a price the way PayPal expects it: ``1234.50``."""
    return str(Decimal(str(amount)).quantize(_CENTS, rounding=ROUND_HALF_UP))
