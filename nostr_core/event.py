"""NIP-01 events: canonical serialization, identifiers, signing and verification.

An event starts as an `UnsignedEvent` (its `id` is always recomputed from its
fields) and becomes an `Event` once signed. Both are frozen; changing a
field means building a new event, and a signed event whose fields no longer
hash to its stored `id` fails verification.
"""

import hashlib
import json
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Optional, Tuple

from .errors import InvalidEvent, KeyMismatch
from .keys import KeyPair, verify_signature
from .utils import is_hex_len

logger = logging.getLogger(__name__)

Tags = Tuple[Tuple[str, ...], ...]


class EventKind:
    """Well-known kinds. Kinds are open integers; anything else is just "unknown"."""

    METADATA = 0
    TEXT_NOTE = 1
    RECOMMEND_RELAY = 2
    FOLLOW_LIST = 3
    ENCRYPTED_DIRECT_MESSAGE = 4
    DELETION = 5
    REPOST = 6
    REACTION = 7
    SEAL = 13
    CHAT_MESSAGE = 14
    GIFT_WRAP = 1059
    ZAP_REQUEST = 9734
    ZAP = 9735
    RELAY_LIST = 10002
    LONG_FORM = 30023

    _NAMES = {
        0: "metadata",
        1: "text_note",
        2: "recommend_relay",
        3: "follow_list",
        4: "encrypted_direct_message",
        5: "deletion",
        6: "repost",
        7: "reaction",
        13: "seal",
        14: "chat_message",
        1059: "gift_wrap",
        9734: "zap_request",
        9735: "zap",
        10002: "relay_list",
        30023: "long_form",
    }

    @classmethod
    def name_of(cls, kind: int) -> str:
        return cls._NAMES.get(kind, "unknown")

    @staticmethod
    def classify(kind: int) -> str:
        """NIP-01 storage class of a kind."""
        if 10000 <= kind < 20000 or kind in (0, 3):
            return "replaceable"
        if 20000 <= kind < 30000:
            return "ephemeral"
        if 30000 <= kind < 40000:
            return "addressable"
        return "regular"


# NIP-01 canonical form. ensure_ascii escapes every non-ASCII character as
# \uXXXX (astral code points as surrogate pairs); json never escapes "/".
def serialize_for_id(pubkey: str, created_at: int, kind: int, tags, content: str) -> str:
    event_data = [0, pubkey.lower(), created_at, kind, [list(t) for t in tags], content]
    return json.dumps(event_data, separators=(",", ":"), ensure_ascii=True)


def compute_event_id(pubkey: str, created_at: int, kind: int, tags, content: str) -> str:
    serialized = serialize_for_id(pubkey, created_at, kind, tags, content)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def _normalize_tags(tags) -> Tags:
    if not isinstance(tags, (list, tuple)):
        raise InvalidEvent("tags must be a list")
    out = []
    for tag in tags:
        if not isinstance(tag, (list, tuple)) or not all(isinstance(v, str) for v in tag):
            raise InvalidEvent("each tag must be a list of strings")
        out.append(tuple(tag))
    return tuple(out)


def _check_fields(pubkey, created_at, kind, content) -> None:
    if not is_hex_len(pubkey, 64):
        raise InvalidEvent("invalid pubkey (must be 32-byte hex / 64 chars, x-only)")
    # bool is an int subclass but never a valid kind or timestamp
    if not isinstance(created_at, int) or isinstance(created_at, bool) or created_at < 0:
        raise InvalidEvent("created_at must be a non-negative int")
    if not isinstance(kind, int) or isinstance(kind, bool) or kind < 0:
        raise InvalidEvent("kind must be a non-negative int")
    if not isinstance(content, str):
        raise InvalidEvent("content must be string")


class _TagAccess:
    tags: Tags

    def tag_values(self, name: str) -> list[str]:
        """Second element of every tag named `name`."""
        return [t[1] for t in self.tags if len(t) >= 2 and t[0] == name]

    def first_tag(self, name: str) -> Optional[Tuple[str, ...]]:
        for t in self.tags:
            if t and t[0] == name:
                return t
        return None


@dataclass(frozen=True)
class UnsignedEvent(_TagAccess):
    pubkey: str
    created_at: int
    kind: int
    tags: Tags = ()
    content: str = ""

    def __post_init__(self):
        _check_fields(self.pubkey, self.created_at, self.kind, self.content)
        object.__setattr__(self, "pubkey", self.pubkey.lower())
        object.__setattr__(self, "tags", _normalize_tags(self.tags))

    @classmethod
    def now(
        cls,
        pubkey: str,
        kind: int,
        content: str = "",
        tags=(),
        clock: Callable[[], float] = time.time,
    ) -> "UnsignedEvent":
        return cls(pubkey=pubkey, created_at=int(clock()), kind=kind, tags=tags, content=content)

    @property
    def id(self) -> str:
        return compute_event_id(self.pubkey, self.created_at, self.kind, self.tags, self.content)

    @property
    def id_bytes(self) -> bytes:
        return bytes.fromhex(self.id)

    def serialize(self) -> str:
        return serialize_for_id(self.pubkey, self.created_at, self.kind, self.tags, self.content)

    def with_tags(self, tags) -> "UnsignedEvent":
        return replace(self, tags=tags)

    def sign(self, keypair: KeyPair) -> "Event":
        if self.pubkey != keypair.public_key:
            raise KeyMismatch("signing key does not match event pubkey")
        event_id = self.id
        sig = keypair.sign(bytes.fromhex(event_id)).hex()
        return Event(
            id=event_id,
            pubkey=self.pubkey,
            created_at=self.created_at,
            kind=self.kind,
            tags=self.tags,
            content=self.content,
            sig=sig,
        )

    def to_dict(self) -> dict:
        """Rumor form: id included, no sig."""
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(t) for t in self.tags],
            "content": self.content,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "UnsignedEvent":
        """Build from a dict; a stored id or sig is ignored."""
        if not isinstance(d, dict):
            raise InvalidEvent("event must be an object")
        for k in ("pubkey", "created_at", "kind", "tags", "content"):
            if k not in d:
                raise InvalidEvent(f"missing field: {k}")
        return cls(
            pubkey=d["pubkey"],
            created_at=d["created_at"],
            kind=d["kind"],
            tags=d["tags"],
            content=d["content"],
        )


@dataclass(frozen=True)
class Event(_TagAccess):
    """A signed event. `verify` never trusts the stored id."""

    id: str
    pubkey: str
    created_at: int
    kind: int
    tags: Tags
    content: str
    sig: str = field(repr=False)

    def __post_init__(self):
        _check_fields(self.pubkey, self.created_at, self.kind, self.content)
        if not is_hex_len(self.id, 64):
            raise InvalidEvent("invalid id (must be 32-byte hex / 64 chars)")
        if not is_hex_len(self.sig, 128):
            raise InvalidEvent("invalid sig (must be 64-byte hex / 128 chars)")
        object.__setattr__(self, "id", self.id.lower())
        object.__setattr__(self, "pubkey", self.pubkey.lower())
        object.__setattr__(self, "sig", self.sig.lower())
        object.__setattr__(self, "tags", _normalize_tags(self.tags))

    def compute_id(self) -> str:
        return compute_event_id(self.pubkey, self.created_at, self.kind, self.tags, self.content)

    def verify(self) -> bool:
        if self.compute_id() != self.id:
            return False
        return verify_signature(self.pubkey, bytes.fromhex(self.id), bytes.fromhex(self.sig))

    def unsigned(self) -> UnsignedEvent:
        return UnsignedEvent(
            pubkey=self.pubkey,
            created_at=self.created_at,
            kind=self.kind,
            tags=self.tags,
            content=self.content,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(t) for t in self.tags],
            "content": self.content,
            "sig": self.sig,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Event":
        if not isinstance(d, dict):
            raise InvalidEvent("event must be an object")
        for k in ("id", "pubkey", "created_at", "kind", "tags", "content", "sig"):
            if k not in d:
                raise InvalidEvent(f"missing field: {k}")
        return cls(
            id=d["id"],
            pubkey=d["pubkey"],
            created_at=d["created_at"],
            kind=d["kind"],
            tags=d["tags"],
            content=d["content"],
            sig=d["sig"],
        )

    @classmethod
    def from_json(cls, raw: str) -> "Event":
        try:
            d = json.loads(raw)
        except (TypeError, ValueError):
            raise InvalidEvent("event is not valid JSON") from None
        return cls.from_dict(d)


def check_event_dict(event: Dict[str, Any]) -> Tuple[bool, str]:
    """
    Return (valid, reason) tuple for a wire-format event dict.
    """
    try:
        parsed = Event.from_dict(event)
    except InvalidEvent as e:
        return False, str(e)

    if parsed.compute_id() != parsed.id:
        return False, "id does not match computed id"
    if not parsed.verify():
        logger.debug("signature check failed for event %s", parsed.id)
        return False, "invalid signature"
    return True, "ok"
