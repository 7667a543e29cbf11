"""Deterministic storage keys for content identities.

Video identities map to ``<provider_key>+<item_id>``; audiobooks map to
``audiobook+<album_id>``. Tokens are restricted to ``[A-Za-z0-9_-]+`` so the
separator can never appear inside one, and ``audiobook`` is reserved as a
provider key, which keeps the mapping injective.
"""

import re

from reelhub.core.errors import InvalidIdentity
from reelhub.models.media import ContentIdentity, ContentKind

KEY_SEPARATOR = "+"
AUDIOBOOK_TAG = "audiobook"

_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def validate_token(value: str | None, field: str) -> str:
    """Return ``value`` if it is a legal key token, else raise InvalidIdentity."""
    if value is None or not _TOKEN_RE.match(str(value)):
        raise InvalidIdentity(f"{field} must match [A-Za-z0-9_-]+, got {value!r}")
    return str(value)


def make_key(identity: ContentIdentity) -> str:
    """Map a content identity to its storage key."""
    if identity.kind == ContentKind.AUDIOBOOK:
        album_id = validate_token(identity.album_id, "album_id")
        return f"{AUDIOBOOK_TAG}{KEY_SEPARATOR}{album_id}"

    provider_key = validate_token(identity.provider_key, "provider_key")
    if provider_key == AUDIOBOOK_TAG:
        raise InvalidIdentity(f"provider key {AUDIOBOOK_TAG!r} is reserved for audiobooks")
    item_id = validate_token(identity.item_id, "item_id")
    return f"{provider_key}{KEY_SEPARATOR}{item_id}"


def make_video_key(provider_key: str, item_id: str) -> str:
    return make_key(ContentIdentity.video(provider_key, item_id))


def make_audiobook_key(album_id: str) -> str:
    return make_key(ContentIdentity.audiobook(album_id))


def parse_key(key: str) -> ContentIdentity:
    """Inverse of make_key."""
    head, sep, tail = key.partition(KEY_SEPARATOR)
    if not sep:
        raise InvalidIdentity(f"storage key {key!r} has no separator")
    if head == AUDIOBOOK_TAG:
        identity = ContentIdentity.audiobook(tail)
    else:
        identity = ContentIdentity.video(head, tail)
    # Round-trip through make_key to validate both tokens
    make_key(identity)
    return identity
