"""Normalization of decrypted profile fields into canonical shapes."""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

DecodedValue = str | list[str]


class FieldKind(str, Enum):
    """Shape a caller expects back from a decoded field."""

    SCALAR = "scalar"
    LIST = "list"


class FieldCodec:
    """Decode a single decrypted payload into a string or an ordered string list.

    Encryption upstream is applied regardless of a field's semantic shape, so a
    list value may arrive as a JSON array, as a JSON string wrapping a JSON
    array, or as a comma-delimited string. The codec accepts all of them.
    """

    @staticmethod
    def decode(raw: Any, kind: FieldKind | str = FieldKind.LIST) -> DecodedValue:
        """Decode ``raw`` according to ``kind``.

        Args:
            raw: Decrypted payload (usually a string, possibly already decoded)
            kind: ``FieldKind.LIST`` or ``FieldKind.SCALAR``

        Returns:
            ``list[str]`` for list fields, ``str`` for scalar fields
        """
        if FieldKind(kind) is FieldKind.SCALAR:
            return FieldCodec.decode_scalar(raw)
        return FieldCodec.decode_list(raw)

    @staticmethod
    def decode_list(raw: Any) -> list[str]:
        """Decode a list-kind payload; the first matching rule wins."""
        if raw is None:
            return []
        if isinstance(raw, (list, tuple)):
            return FieldCodec._stringify_items(raw)
        if not isinstance(raw, str):
            return [str(raw)]

        trimmed = raw.strip()
        if not trimmed:
            return []

        parsed = FieldCodec._parse_json_array(trimmed)
        if parsed is not None:
            return parsed

        if FieldCodec._is_quoted(trimmed):
            trimmed = FieldCodec._unquote(trimmed)
            if not trimmed:
                return []
            parsed = FieldCodec._parse_json_array(trimmed)
            if parsed is not None:
                return parsed

        if "," in trimmed:
            return [segment.strip() for segment in trimmed.split(",") if segment.strip()]

        return [trimmed]

    @staticmethod
    def decode_scalar(raw: Any) -> str:
        """Decode a scalar-kind payload; lists collapse to their first entry."""
        if raw is None:
            return ""
        if isinstance(raw, (list, tuple)):
            return str(raw[0]) if raw else ""
        return str(raw)

    @staticmethod
    def _parse_json_array(text: str) -> list[str] | None:
        if not (text.startswith("[") and text.endswith("]")):
            return None
        try:
            parsed = json.loads(text)
        except ValueError:
            return None
        if not isinstance(parsed, list):
            return None
        return FieldCodec._stringify_items(parsed)

    @staticmethod
    def _stringify_items(items: list[Any] | tuple[Any, ...]) -> list[str]:
        return [item if isinstance(item, str) else str(item) for item in items if item is not None]

    @staticmethod
    def _is_quoted(text: str) -> bool:
        return len(text) >= 2 and text[0] == '"' and text[-1] == '"'

    @staticmethod
    def _unquote(text: str) -> str:
        """Strip one layer of quoting, honouring JSON escapes when present."""
        try:
            unwrapped = json.loads(text)
        except ValueError:
            unwrapped = None
        if isinstance(unwrapped, str):
            return unwrapped.strip()
        return text[1:-1].strip()
