"""NIP-59 gift wrap: rumor -> seal -> wrap.

The rumor is the real, never-signed event. The seal (kind 13) carries the
rumor encrypted to the recipient and is signed by the real author. The wrap
(kind 1059) carries the seal encrypted to the recipient and is signed by a
single-use ephemeral key that never leaves `create_gift_wrap`.
"""

import json
import logging
import os
import time
from typing import Callable, Optional, Tuple

from .config import GIFT_WRAP_KIND, SEAL_KIND, TIMESTAMP_TWEAK_WINDOW
from .errors import CryptoError, InvalidEvent, KeyMismatch
from .event import Event, UnsignedEvent
from .keys import KeyPair
from .nip44 import nip44_decrypt, nip44_encrypt
from .utils import normalize_pubkey_input

logger = logging.getLogger(__name__)


def randomized_timestamp(
    rng: Callable[[int], bytes] = os.urandom,
    clock: Callable[[], float] = time.time,
    window: int = TIMESTAMP_TWEAK_WINDOW,
) -> int:
    """A timestamp uniformly up to `window` seconds in the past."""
    now = int(clock())
    if window <= 0:
        return now
    try:
        draw = rng(8)
    except (OSError, NotImplementedError) as e:
        raise CryptoError(f"randomness source unavailable: {type(e).__name__}") from None
    offset = int.from_bytes(draw, "big") % (window + 1)
    return max(0, now - offset)


def create_rumor(
    pubkey: str,
    kind: int,
    content: str,
    tags=(),
    clock: Callable[[], float] = time.time,
) -> UnsignedEvent:
    return UnsignedEvent.now(pubkey, kind, content=content, tags=tags, clock=clock)


def create_seal(
    rumor: UnsignedEvent,
    sender: KeyPair,
    recipient_pubkey: str,
    randomize_timestamp: bool = True,
    rng: Callable[[int], bytes] = os.urandom,
    clock: Callable[[], float] = time.time,
) -> Event:
    if rumor.pubkey != sender.public_key:
        raise KeyMismatch("rumor author does not match sender key")
    recipient = normalize_pubkey_input(recipient_pubkey)

    content = nip44_encrypt(sender, recipient, rumor.to_json(), rng=rng)
    created_at = randomized_timestamp(rng, clock) if randomize_timestamp else int(clock())

    # no tags: the seal must not name its recipient
    seal = UnsignedEvent(
        pubkey=sender.public_key,
        created_at=created_at,
        kind=SEAL_KIND,
        tags=(),
        content=content,
    )
    return seal.sign(sender)


def create_gift_wrap(
    seal: Event,
    recipient_pubkey: str,
    relay_url: Optional[str] = None,
    expiration: Optional[int] = None,
    randomize_timestamp: bool = True,
    rng: Callable[[int], bytes] = os.urandom,
    clock: Callable[[], float] = time.time,
) -> Event:
    if seal.kind != SEAL_KIND:
        raise InvalidEvent(f"expected a kind {SEAL_KIND} seal, got kind {seal.kind}")
    recipient = normalize_pubkey_input(recipient_pubkey)

    p_tag = ["p", recipient, relay_url] if relay_url else ["p", recipient]
    tags = [p_tag]
    if expiration is not None:
        tags.append(["expiration", str(int(expiration))])

    created_at = randomized_timestamp(rng, clock) if randomize_timestamp else int(clock())

    ephemeral = KeyPair.generate(rng)
    gift = UnsignedEvent(
        pubkey=ephemeral.public_key,
        created_at=created_at,
        kind=GIFT_WRAP_KIND,
        tags=tags,
        content=nip44_encrypt(ephemeral, recipient, seal.to_json(), rng=rng),
    ).sign(ephemeral)
    del ephemeral
    return gift


def wrap(
    rumor: UnsignedEvent,
    sender: KeyPair,
    recipient_pubkey: str,
    relay_url: Optional[str] = None,
    expiration: Optional[int] = None,
    randomize_timestamp: bool = True,
    rng: Callable[[int], bytes] = os.urandom,
    clock: Callable[[], float] = time.time,
) -> Event:
    """Seal the rumor as `sender`, then wrap the seal for the recipient."""
    seal = create_seal(rumor, sender, recipient_pubkey, randomize_timestamp, rng, clock)
    return create_gift_wrap(
        seal,
        recipient_pubkey,
        relay_url=relay_url,
        expiration=expiration,
        randomize_timestamp=randomize_timestamp,
        rng=rng,
        clock=clock,
    )


def _decrypt_inner(recipient: KeyPair, outer: Event) -> dict:
    plaintext = nip44_decrypt(recipient, outer.pubkey, outer.content)
    try:
        inner = json.loads(plaintext)
    except (ValueError, RecursionError):
        raise InvalidEvent(f"kind {outer.kind} content is not an event") from None
    if not isinstance(inner, dict):
        raise InvalidEvent(f"kind {outer.kind} content is not an event")
    return inner


def unwrap_gift(gift_wrap: Event, recipient: KeyPair) -> Event:
    """Verify and decrypt the wrap; returns the seal it carried, verified."""
    if gift_wrap.kind != GIFT_WRAP_KIND:
        raise InvalidEvent(f"expected kind {GIFT_WRAP_KIND}, got kind {gift_wrap.kind}")
    if not gift_wrap.verify():
        logger.warning("rejecting gift wrap %s: bad signature", gift_wrap.id)
        raise InvalidEvent("gift wrap signature is invalid")

    seal = Event.from_dict(_decrypt_inner(recipient, gift_wrap))
    if seal.kind != SEAL_KIND:
        raise InvalidEvent(f"expected a kind {SEAL_KIND} seal, got kind {seal.kind}")
    if not seal.verify():
        logger.warning("rejecting seal %s: bad signature", seal.id)
        raise InvalidEvent("seal signature is invalid")
    return seal


def open_seal(seal: Event, recipient: KeyPair) -> UnsignedEvent:
    """Decrypt a verified seal; the rumor must be authored by the seal's signer."""
    if seal.kind != SEAL_KIND:
        raise InvalidEvent(f"expected kind {SEAL_KIND}, got kind {seal.kind}")
    if not seal.verify():
        logger.warning("rejecting seal %s: bad signature", seal.id)
        raise InvalidEvent("seal signature is invalid")

    # any sig carried inside the rumor is dropped by from_dict
    rumor = UnsignedEvent.from_dict(_decrypt_inner(recipient, seal))
    if rumor.pubkey != seal.pubkey:
        logger.warning("rejecting seal %s: rumor author differs from seal author", seal.id)
        raise InvalidEvent("rumor author does not match seal author")
    return rumor


def unwrap_and_open(gift_wrap: Event, recipient: KeyPair) -> Tuple[UnsignedEvent, Event]:
    seal = unwrap_gift(gift_wrap, recipient)
    return open_seal(seal, recipient), seal


def unwrap(gift_wrap: Event, recipient: KeyPair) -> UnsignedEvent:
    """Recover the rumor from a gift wrap addressed to `recipient`."""
    rumor, _ = unwrap_and_open(gift_wrap, recipient)
    return rumor
