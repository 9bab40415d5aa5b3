"""Error taxonomy shared by every nostr_core module.

Messages never carry private scalars, shared secrets or plaintexts.
"""


class NostrError(Exception):
    """Base class for all nostr_core failures."""


class InvalidKey(NostrError, ValueError):
    """Malformed or out-of-range key material."""


class KeyMismatch(NostrError):
    """The signing key is not the event's declared author."""


class InvalidEvent(NostrError, ValueError):
    """Malformed event fields, or an event that failed verification."""


class InvalidPlaintext(NostrError, ValueError):
    """Plaintext outside the encryptable size range."""


class DecryptionFailed(NostrError):
    """Opaque decryption failure.

    Raised for a bad version byte, bad length, MAC mismatch, bad padding or
    invalid UTF-8 alike; the message is always the same.
    """

    def __init__(self):
        super().__init__("decryption failed")


class InvalidDerivation(NostrError, ValueError):
    """Bad mnemonic, bad checksum, or an underivable path."""


class MiningTimeout(NostrError):
    """Proof-of-work search hit its deadline."""


class MiningCancelled(NostrError):
    """Proof-of-work search was cancelled by the caller."""


class CryptoError(NostrError):
    """The randomness source failed."""
