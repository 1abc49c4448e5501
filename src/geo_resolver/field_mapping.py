"""Field-mapping expressions used to normalize provider payloads.

A mapping value such as ``"location.city"`` is a dotted path into the provider's
JSON response. A value containing commas such as ``"region,city"`` concatenates
the non-empty results of each path, in order.
"""

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict

PATH_DELIMITER = ","
SEGMENT_DELIMITER = "."


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


def lookup_path(payload: Any, path: tuple[str, ...]) -> Any:
    """Walk `path` through nested dicts/lists, returning MISSING when it does not resolve."""
    node = payload
    for segment in path:
        if isinstance(node, dict):
            if segment not in node:
                return MISSING
            node = node[segment]
        elif isinstance(node, list) and segment.isdigit():
            index = int(segment)
            if index >= len(node):
                return MISSING
            node = node[index]
        else:
            return MISSING
    return node


def _is_empty(value: Any) -> bool:
    return value is MISSING or value is None or value == ""


class FieldExpression(BaseModel):
    """Parsed form of a single field-mapping value."""

    model_config = ConfigDict(frozen=True)

    paths: tuple[tuple[str, ...], ...]
    concatenate: bool = False

    @classmethod
    def parse(cls, raw: str) -> "FieldExpression":
        """Parse a mapping value, raising ValueError for blank or malformed paths."""
        concatenate = PATH_DELIMITER in raw
        parts = [part.strip() for part in raw.split(PATH_DELIMITER)]

        paths: list[tuple[str, ...]] = []
        for part in parts:
            if not part:
                # "region," is tolerated: the empty part contributes nothing.
                continue
            segments = tuple(segment.strip() for segment in part.split(SEGMENT_DELIMITER))
            if any(not segment for segment in segments):
                raise ValueError(f"malformed field path {part!r}")
            paths.append(segments)

        if not paths:
            raise ValueError(f"field mapping value {raw!r} has no paths")

        return cls(paths=tuple(paths), concatenate=concatenate)

    def evaluate(self, payload: Any, separator: str = "") -> Any:
        """Evaluate against a raw provider payload.

        Plain paths return the raw value (or MISSING). Concatenations always
        return a string built from the non-empty sub-values.
        """
        if not self.concatenate:
            return lookup_path(payload, self.paths[0])

        values = (lookup_path(payload, path) for path in self.paths)
        return separator.join(str(value) for value in values if not _is_empty(value))


def apply_field_mapping(
    mapping: Mapping[str, FieldExpression],
    payload: Any,
    separator: str = "",
) -> dict[str, Any]:
    """Map a provider payload into the standard field set, skipping unresolved fields."""
    result: dict[str, Any] = {}
    for standard_field, expression in mapping.items():
        value = expression.evaluate(payload, separator)
        if value is not MISSING:
            result[standard_field] = value
    return result
