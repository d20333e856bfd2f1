"""Mapping of auth-provider subject ids onto the UUID ids the database stores.

The auth provider hands out ids shaped like ``user_09c842d04dff46ef925cfe563ffb3bf5``.
Stripping the prefix leaves 32 hex characters, which get reshuffled into UUID text:

    user_09c842d04dff46ef925cfe563ffb3bf5 -> 09c842d0-4dff-46ef-a25c-fe563ffb3bf5

The version nibble is forced to ``4`` and the variant nibble to ``a``. This is a fixed
string transform, not a registered UUID derivation; it only has to be stable and to
pass the storage layer's format check.
"""
import re
import uuid

from loguru import logger

from . import exceptions
from .config import settings

CANONICAL_UUID = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
HEX_32 = re.compile(r"^[0-9a-f]{32}$", re.IGNORECASE)


def is_canonical_uuid(value: str) -> bool:
    return bool(CANONICAL_UUID.match(value))


def reshape_hex(raw: str) -> str:
    hex_id = raw.lower()
    return (
        f"{hex_id[0:8]}-{hex_id[8:12]}-4{hex_id[13:16]}-a{hex_id[17:20]}-{hex_id[20:32]}"
    )


def normalize_external_id(raw: str, prefix: str | None = None) -> str:
    """Return the canonical id for ``raw``.

    Ids without the external prefix are returned untouched. Prefixed ids must reduce to
    canonical UUID text, otherwise InvalidIdentifierFormatError is raised right here
    instead of letting a malformed id reach the database.
    """
    prefix = settings.EXTERNAL_ID_PREFIX if prefix is None else prefix
    if not prefix or not raw.startswith(prefix):
        return raw

    candidate = raw[len(prefix):]
    if HEX_32.match(candidate):
        candidate = reshape_hex(candidate)

    if not is_canonical_uuid(candidate):
        logger.warning("Invalid UUID after conversion for {}", raw)
        raise exceptions.InvalidIdentifierFormatError("user ID")

    logger.debug("Converted external id {} -> {}", raw, candidate)
    return candidate


def parse_user_id(raw: str) -> uuid.UUID:
    """Normalize then parse; non-prefixed garbage fails with the same error class."""
    normalized = normalize_external_id(raw)
    try:
        return uuid.UUID(normalized)
    except ValueError:
        raise exceptions.InvalidIdentifierFormatError("user ID")


def normalized_user_id(user_id: str) -> uuid.UUID:
    """FastAPI dependency for routes with a ``{user_id}`` path parameter."""
    return parse_user_id(user_id)
