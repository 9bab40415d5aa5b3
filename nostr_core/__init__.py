"""Nostr protocol primitives.

Keys and Schnorr signatures, canonical events, NIP-44 encryption, NIP-59
gift wrap, NIP-06 key derivation and NIP-13 proof of work. No network I/O.
"""

import logging

from .errors import (
    CryptoError,
    DecryptionFailed,
    InvalidDerivation,
    InvalidEvent,
    InvalidKey,
    InvalidPlaintext,
    KeyMismatch,
    MiningCancelled,
    MiningTimeout,
    NostrError,
)
from .event import Event, EventKind, UnsignedEvent, check_event_dict, compute_event_id, serialize_for_id
from .keys import KeyPair, verify_signature

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())
