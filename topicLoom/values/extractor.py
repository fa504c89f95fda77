"""
Value extraction from raw broker payloads.

A payload is passed through untouched unless a structured path is given, in
which case it is parsed as JSON and the path (``a.b[0]``, ``a.b.0`` or
``a["b.c"]``) is resolved against the result.
"""

import json
import re
from typing import Any, List, Union

from topicLoom.common.errors import MalformedPayloadError, PathNotFoundError

_SEGMENT_RE = re.compile(
    r"""
    \[\s*(?P<index>-?\d+)\s*\]          # [0]
    | \[\s*(?P<quote>["'])(?P<key>.*?)(?P=quote)\s*\]   # ["key"] or ['key']
    | (?P<name>[^.\[\]]+)               # plain name
    | (?P<dot>\.)
    """,
    re.VERBOSE,
)

PathSegment = Union[str, int]


def parse_path(path: str) -> List[PathSegment]:
    """Split a dotted/bracketed path into segments.

    Bracketed integers become ints; everything else stays a string, so that
    ``a.0`` can still address either a list index or a dict key named "0".
    """
    segments: List[PathSegment] = []
    position = 0
    while position < len(path):
        match = _SEGMENT_RE.match(path, position)
        if match is None:
            raise PathNotFoundError(path)
        if match.group("index") is not None:
            segments.append(int(match.group("index")))
        elif match.group("quote") is not None:
            segments.append(match.group("key"))
        elif match.group("name") is not None:
            segments.append(match.group("name").strip())
        position = match.end()
    return segments


def resolve_path(data: Any, path: str) -> Any:
    """Walk ``path`` through parsed JSON, raising PathNotFoundError on a miss."""
    current = data
    for segment in parse_path(path):
        if isinstance(current, dict):
            key = str(segment)
            if key not in current:
                raise PathNotFoundError(path)
            current = current[key]
        elif isinstance(current, list):
            try:
                index = int(segment)
            except ValueError:
                raise PathNotFoundError(path)
            if not -len(current) <= index < len(current):
                raise PathNotFoundError(path)
            current = current[index]
        else:
            raise PathNotFoundError(path)
    return current


def extract(payload: str, path: str = "") -> Any:
    """Return the comparison-ready value for ``payload``.

    Raises:
        MalformedPayloadError: a path was given and the payload is not JSON
        PathNotFoundError: the path does not resolve
    """
    if not path:
        return payload

    try:
        data = json.loads(payload)
    except (ValueError, TypeError) as e:
        raise MalformedPayloadError(payload if isinstance(payload, str) else repr(payload), e)

    return resolve_path(data, path)


def to_output_value(value: Any) -> Any:
    """Serialize structured values to a JSON string; scalars pass through."""
    if isinstance(value, (dict, list)) or value is None:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return value
