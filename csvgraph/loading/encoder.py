"""Conversion of raw CSV text into Cypher parameters and inline literals.

All escaping for statement text lives here. Two renderings exist:

* parameters, sent alongside ``UNWIND $batch`` statements, typed as int, float,
  str or None;
* inline literals, embedded in the single-row statements used when a bulk
  statement fails.

Numbers are only inferred when the conversion is lossless. A value that would
overflow a 64-bit integer, or a decimal the float cannot represent exactly as
written, stays a string.
"""

from __future__ import annotations

import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional, Union

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

NULL_LITERAL = "null"

ParameterValue = Union[int, float, str, None]

_INTEGER_RE = re.compile(r"-?(?:0|[1-9][0-9]*)")
_FLOAT_RE = re.compile(r"-?(?:(?:0|[1-9][0-9]*)(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")
_IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

_ESCAPES = {
    "\\": "\\\\",
    "'": "\\'",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}
_UNESCAPES = {"\\": "\\", "'": "'", '"': '"', "n": "\n", "r": "\r", "t": "\t"}


def _parse_int(raw: str) -> Optional[int]:
    if not _INTEGER_RE.fullmatch(raw):
        return None
    value = int(raw)
    if value == 0 and raw.startswith("-"):
        return None
    if not INT64_MIN <= value <= INT64_MAX:
        return None
    return value


def _parse_float(raw: str) -> Optional[float]:
    if not _FLOAT_RE.fullmatch(raw):
        return None
    value = float(raw)
    if not math.isfinite(value):
        return None
    try:
        if Decimal(raw) != Decimal(repr(value)):
            return None
    except InvalidOperation:
        return None
    return value


def encode_parameter(raw: Optional[str]) -> ParameterValue:
    """Encode a raw field as a typed parameter value.

    Tries integer, then float, then falls back to the original string.
    """
    if raw is None or raw == "":
        return None
    if _INTEGER_RE.fullmatch(raw):
        # Integer text that does not fit int64 stays a string, never a float.
        as_int = _parse_int(raw)
        return raw if as_int is None else as_int
    as_float = _parse_float(raw)
    if as_float is not None:
        return as_float
    return raw


def encode_identifier(raw: Optional[str]) -> ParameterValue:
    """Encode an identifier field. Empty identifiers become ``""``, never null."""
    if raw is None or raw == "":
        return ""
    return encode_parameter(raw)


def encode_string_parameter(raw: Optional[str]) -> Optional[str]:
    """String-only encoding: empty -> None, everything else kept verbatim."""
    if raw is None or raw == "":
        return None
    return raw


def escape_string(value: str) -> str:
    """Escape a string for use inside a single-quoted Cypher literal."""
    return "".join(_ESCAPES.get(ch, ch) for ch in value)


def quote_string(value: str) -> str:
    return f"'{escape_string(value)}'"


def encode_literal(raw: Optional[str]) -> str:
    """Encode a raw field as an inline literal: always a quoted string, or ``null``."""
    if raw is None or raw == "":
        return NULL_LITERAL
    return quote_string(raw)


def decode_literal(literal: str) -> Optional[str]:
    """Invert ``encode_literal``.

    Raises:
        ValueError: If the text is not a single-quoted literal or ``null``
    """
    if literal == NULL_LITERAL:
        return None
    if len(literal) < 2 or literal[0] != "'" or literal[-1] != "'":
        raise ValueError(f"Not a quoted Cypher string literal: {literal!r}")

    body = literal[1:-1]
    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\":
            if i + 1 >= len(body):
                raise ValueError(f"Dangling escape in literal: {literal!r}")
            nxt = body[i + 1]
            if nxt not in _UNESCAPES:
                raise ValueError(f"Unknown escape \\{nxt} in literal: {literal!r}")
            out.append(_UNESCAPES[nxt])
            i += 2
            continue
        if ch == "'":
            raise ValueError(f"Unescaped quote in literal: {literal!r}")
        out.append(ch)
        i += 1
    return "".join(out)


def quote_identifier(name: str) -> str:
    """Render a label, relationship type or property key for statement text.

    Plain identifiers are emitted as-is; anything else is backtick-quoted.
    """
    if not name:
        raise ValueError("Identifier must not be empty")
    if _IDENTIFIER_RE.fullmatch(name):
        return name
    return "`" + name.replace("`", "``") + "`"


def to_cypher_literal(value: Any) -> str:
    """Render a Python value as a Cypher literal.

    Maps use unquoted keys (``{key: value}``), as Cypher map literals do.
    """
    if value is None:
        return NULL_LITERAL
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"Cannot render non-finite float as a Cypher literal: {value}")
        return repr(value).replace("e+", "e")
    if isinstance(value, str):
        return quote_string(value)
    if isinstance(value, Mapping):
        items = ", ".join(
            f"{quote_identifier(str(k))}: {to_cypher_literal(v)}" for k, v in value.items()
        )
        return "{" + items + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(to_cypher_literal(v) for v in value) + "]"
    raise TypeError(f"Unsupported value type for Cypher literal: {type(value).__name__}")


class ValueEncoder:
    """Encoding strategy shared by the bulk and fallback paths of one run.

    ``typed`` infers numbers losslessly; ``string`` keeps every value as a string.
    Both paths of a run use the same strategy, so a row written through the
    fallback path ends up identical to one written in bulk.
    """

    def __init__(self, literal_mode: str = "typed"):
        if literal_mode not in ("typed", "string"):
            raise ValueError(f"Unknown literal mode: {literal_mode}")
        self.literal_mode = literal_mode

    def parameter(self, raw: Optional[str]) -> ParameterValue:
        if self.literal_mode == "string":
            return encode_string_parameter(raw)
        return encode_parameter(raw)

    def identifier(self, raw: Optional[str]) -> ParameterValue:
        if self.literal_mode == "string":
            return raw or ""
        return encode_identifier(raw)

    def literal(self, raw: Optional[str]) -> str:
        if self.literal_mode == "string":
            return encode_literal(raw)
        return to_cypher_literal(encode_parameter(raw))

    def identifier_literal(self, raw: Optional[str]) -> str:
        return to_cypher_literal(self.identifier(raw))
