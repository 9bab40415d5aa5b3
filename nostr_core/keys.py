"""secp256k1 key pairs for signing events and deriving shared secrets.

Signing and verification go through libsecp256k1 (BIP-340 Schnorr over the
x-only public key). ECDH goes through `cryptography`, whose exchange returns
the bare x-coordinate of the shared point, which is what NIP-44 needs.
"""

import os
from typing import Callable

from cryptography.hazmat.primitives.asymmetric import ec
from secp256k1 import PrivateKey, PublicKey

from .errors import CryptoError, InvalidKey
from .utils import decode_nip19_key, encode_nip19, is_hex_len, require_32byte_hex

# Order of the secp256k1 group.
CURVE_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


def _private_key_from_bytes(sk: bytes) -> PrivateKey:
    d = int.from_bytes(sk, "big")
    if not 1 <= d < CURVE_ORDER:
        raise InvalidKey("private key out of range [1, n-1]")
    try:
        return PrivateKey(sk, raw=True)
    except Exception:
        raise InvalidKey("invalid private key") from None


def _lift_x(pubkey_hex: str) -> bytes:
    """
    Nostr pubkeys are 32-byte x-only (BIP340). BIP340 uses 'lift_x' with EVEN Y,
    so the full point is the compressed encoding 0x02 || x.
    """
    x = bytes.fromhex(require_32byte_hex(pubkey_hex, "public key"))
    return b"\x02" + x


class KeyPair:
    """A private scalar and its x-only public key.

    Immutable once constructed; `repr` never shows the private key.
    """

    __slots__ = ("_privkey", "_public_key")

    def __init__(self, privkey: PrivateKey):
        object.__setattr__(self, "_privkey", privkey)
        # compressed pubkey is 02/03 || x; drop the prefix for the x-only form
        object.__setattr__(self, "_public_key", privkey.pubkey.serialize(compressed=True)[1:33])

    def __setattr__(self, name, value):
        raise AttributeError("KeyPair is immutable")

    @classmethod
    def generate(cls, rng: Callable[[int], bytes] = os.urandom) -> "KeyPair":
        """Draw a uniformly random scalar in [1, n-1], rejecting out-of-range draws."""
        while True:
            try:
                sk = rng(32)
            except (OSError, NotImplementedError) as e:
                raise CryptoError(f"randomness source unavailable: {type(e).__name__}") from None
            if len(sk) != 32:
                raise CryptoError("randomness source returned a short read")
            if 1 <= int.from_bytes(sk, "big") < CURVE_ORDER:
                return cls(_private_key_from_bytes(sk))

    @classmethod
    def from_private_key(cls, key: str | bytes) -> "KeyPair":
        """Import a 64-hex (or raw 32-byte) private scalar."""
        if isinstance(key, (bytes, bytearray)):
            if len(key) != 32:
                raise InvalidKey("private key must be 32 bytes")
            return cls(_private_key_from_bytes(bytes(key)))
        if not isinstance(key, str) or not is_hex_len(key, 64):
            raise InvalidKey("private key must be 64-hex (32 bytes)")
        return cls(_private_key_from_bytes(bytes.fromhex(key)))

    @classmethod
    def from_nsec(cls, nsec: str) -> "KeyPair":
        return cls(_private_key_from_bytes(decode_nip19_key(nsec, "nsec")))

    @property
    def public_key(self) -> str:
        return self._public_key.hex()

    @property
    def public_key_bytes(self) -> bytes:
        return self._public_key

    @property
    def public_key_compressed(self) -> bytes:
        """SEC1 compressed point (33 bytes), with the real y parity."""
        return self._privkey.pubkey.serialize(compressed=True)

    @property
    def private_key_hex(self) -> str:
        return self._privkey.private_key.hex()

    @property
    def private_key_bytes(self) -> bytes:
        return bytes(self._privkey.private_key)

    @property
    def npub(self) -> str:
        return encode_nip19("npub", self._public_key)

    @property
    def nsec(self) -> str:
        return encode_nip19("nsec", self.private_key_bytes)

    def sign(self, message: bytes) -> bytes:
        """BIP-340 Schnorr signature (64 bytes) over a 32-byte message."""
        if len(message) != 32:
            raise ValueError("message must be 32 bytes")
        return self._privkey.schnorr_sign(message, None, raw=True)

    def shared_secret(self, public_key_hex: str) -> bytes:
        """
        ECDH with the counterparty's x-only key; returns the 32-byte X coordinate
        of the shared point. Not suitable as a key on its own.
        """
        sk_int = int.from_bytes(self.private_key_bytes, "big")
        priv = ec.derive_private_key(sk_int, ec.SECP256K1())
        try:
            pub = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), _lift_x(public_key_hex))
        except ValueError:
            raise InvalidKey("public key is not a valid curve point") from None

        shared = priv.exchange(ec.ECDH(), pub)
        if len(shared) != 32:
            raise InvalidKey(f"ECDH shared secret unexpected length: {len(shared)}")
        return shared

    def __eq__(self, other):
        if not isinstance(other, KeyPair):
            return NotImplemented
        return self._public_key == other._public_key and self.private_key_bytes == other.private_key_bytes

    def __hash__(self):
        return hash(self._public_key)

    def __repr__(self):
        return f"KeyPair(public_key={self.public_key})"


def verify_signature(pubkey_hex: str, message: bytes, sig: bytes) -> bool:
    """Check a BIP-340 signature. Malformed inputs verify as False."""
    if len(message) != 32 or len(sig) != 64:
        return False
    try:
        pk = PublicKey(_lift_x(pubkey_hex), raw=True)
        return bool(pk.schnorr_verify(message, sig, None, raw=True))
    except Exception:
        return False
