"""NIP-06 key derivation from a BIP-39 mnemonic.

mnemonic --PBKDF2-HMAC-SHA512--> seed --BIP-32--> m/44'/1237'/<account>'/0/0
"""

import logging
import os
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from cryptography.hazmat.primitives import hashes, hmac
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from mnemonic import Mnemonic

from .config import BIP32_SEED_KEY, BIP39_PBKDF2_ROUNDS, NIP06_COIN_TYPE, NIP06_PURPOSE
from .errors import CryptoError, InvalidDerivation
from .keys import CURVE_ORDER, KeyPair

logger = logging.getLogger(__name__)

HARDENED = 0x80000000

# word count -> entropy bits
WORD_COUNTS = {12: 128, 15: 160, 18: 192, 21: 224, 24: 256}

_wordlist = Mnemonic("english")


def _normalize_mnemonic(mnemonic: str) -> str:
    return " ".join(Mnemonic.normalize_string(mnemonic).lower().split())


@dataclass(frozen=True)
class DerivationPath:
    """Ordered (index, hardened) steps below the master key."""

    steps: Tuple[Tuple[int, bool], ...]

    def __post_init__(self):
        for index, _ in self.steps:
            if not 0 <= index < HARDENED:
                raise InvalidDerivation(f"path index out of range: {index}")

    @classmethod
    def parse(cls, path: str) -> "DerivationPath":
        parts = path.strip().split("/")
        if not parts or parts[0] != "m":
            raise InvalidDerivation("derivation path must start with 'm'")
        steps = []
        for part in parts[1:]:
            hardened = part.endswith("'") or part.endswith("h")
            digits = part[:-1] if hardened else part
            if not (digits.isascii() and digits.isdigit()):
                raise InvalidDerivation(f"bad path component: {part!r}")
            steps.append((int(digits), hardened))
        return cls(tuple(steps))

    @classmethod
    def nostr(cls, account: int = 0) -> "DerivationPath":
        return cls(((NIP06_PURPOSE, True), (NIP06_COIN_TYPE, True), (account, True), (0, False), (0, False)))

    def __str__(self):
        return "/".join(["m"] + [f"{i}'" if h else str(i) for i, h in self.steps])


def generate_mnemonic(word_count: int = 24, rng: Callable[[int], bytes] = os.urandom) -> str:
    if word_count not in WORD_COUNTS:
        raise InvalidDerivation(f"word count must be one of {sorted(WORD_COUNTS)}")
    try:
        entropy = rng(WORD_COUNTS[word_count] // 8)
    except (OSError, NotImplementedError) as e:
        raise CryptoError(f"randomness source unavailable: {type(e).__name__}") from None
    # to_mnemonic appends the SHA-256 checksum bits before mapping to words
    return _wordlist.to_mnemonic(entropy)


def validate_mnemonic(mnemonic: str) -> bool:
    if not isinstance(mnemonic, str):
        return False
    return _wordlist.check(_normalize_mnemonic(mnemonic))


def mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    """64-byte BIP-39 seed. The checksum is checked first."""
    if not validate_mnemonic(mnemonic):
        raise InvalidDerivation("invalid mnemonic (unknown word, word count or checksum)")
    words = _normalize_mnemonic(mnemonic).encode("utf-8")
    salt = ("mnemonic" + Mnemonic.normalize_string(passphrase)).encode("utf-8")
    kdf = PBKDF2HMAC(algorithm=hashes.SHA512(), length=64, salt=salt, iterations=BIP39_PBKDF2_ROUNDS)
    return kdf.derive(words)


def _hmac_sha512(key: bytes, data: bytes) -> bytes:
    h = hmac.HMAC(key, hashes.SHA512())
    h.update(data)
    return h.finalize()


def _master_key(seed: bytes) -> Tuple[int, bytes]:
    if not 16 <= len(seed) <= 64:
        raise InvalidDerivation("seed must be 16..64 bytes")
    i = _hmac_sha512(BIP32_SEED_KEY, seed)
    k = int.from_bytes(i[:32], "big")
    if k == 0 or k >= CURVE_ORDER:
        raise InvalidDerivation("seed yields an invalid master key")
    return k, i[32:]


def _derive_child(k: int, chain_code: bytes, index: int, hardened: bool) -> Tuple[int, bytes]:
    """CKDpriv. An unusable IL (>= n, or a zero child) moves on to the next index."""
    while True:
        if index >= HARDENED:
            raise InvalidDerivation("ran out of child indexes")
        child_number = index | HARDENED if hardened else index
        if hardened:
            data = b"\x00" + k.to_bytes(32, "big")
        else:
            data = KeyPair.from_private_key(k.to_bytes(32, "big")).public_key_compressed
        i = _hmac_sha512(chain_code, data + child_number.to_bytes(4, "big"))

        il = int.from_bytes(i[:32], "big")
        child = (il + k) % CURVE_ORDER
        if il < CURVE_ORDER and child != 0:
            return child, i[32:]
        logger.debug("child index %d is unusable, trying %d", index, index + 1)
        index += 1


def derive_key_pair(seed: bytes, account: int = 0, path: Optional[DerivationPath] = None) -> KeyPair:
    """Derive the key pair at `path` (default: the NIP-06 path for `account`)."""
    if path is None:
        path = DerivationPath.nostr(account)
    k, chain_code = _master_key(seed)
    for index, hardened in path.steps:
        k, chain_code = _derive_child(k, chain_code, index, hardened)
    return KeyPair.from_private_key(k.to_bytes(32, "big"))


def derive_from_mnemonic(mnemonic: str, passphrase: str = "", account: int = 0) -> KeyPair:
    return derive_key_pair(mnemonic_to_seed(mnemonic, passphrase), account)


def generate_key_pair(
    word_count: int = 24,
    passphrase: str = "",
    account: int = 0,
    rng: Callable[[int], bytes] = os.urandom,
) -> Tuple[str, KeyPair]:
    """Fresh mnemonic plus the key pair it derives."""
    mnemonic = generate_mnemonic(word_count, rng)
    return mnemonic, derive_from_mnemonic(mnemonic, passphrase, account)
