"""Registration roles - ordered set of role tags with a JSON-list storage contract."""

import json
from collections.abc import Iterable


def normalize_roles(roles: Iterable[str]) -> tuple[str, ...]:
    """Strip, drop blanks and de-duplicate while keeping first-seen order."""
    seen: dict[str, None] = {}
    for role in roles:
        tag = role.strip()
        if tag:
            seen.setdefault(tag, None)
    return tuple(seen)


def encode_roles(roles: Iterable[str]) -> str:
    return json.dumps(list(normalize_roles(roles)))


def decode_roles(raw: str | list[str] | None) -> tuple[str, ...]:
    """
    Decode stored roles.

    Accepts the JSON text written by encode_roles(), an already-decoded
    list (e.g. from a JSONB column), or None for registrations without roles.
    """
    if raw is None or raw == "":
        return ()
    values = json.loads(raw) if isinstance(raw, str) else raw
    if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
        raise ValueError(f"Roles must be a JSON list of strings, got {raw!r}")
    return normalize_roles(values)
