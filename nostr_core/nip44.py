"""NIP-44 versioned encryption (version 2).

Payload layout, base64 encoded for transport:

    version(1) || nonce(32) || ciphertext(34..65538) || mac(32)

The conversation key is HKDF-Extract(salt="nip44-v2", ikm=ECDH x-coordinate).
Each message expands it with a fresh nonce into a ChaCha20 key, a ChaCha20
nonce and an HMAC-SHA256 key. The MAC covers version || nonce || ciphertext.
"""

import base64
import binascii
import os
from typing import Callable, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms
from cryptography.hazmat.primitives.kdf.hkdf import HKDFExpand

from .config import (
    NIP44_MAC_SIZE,
    NIP44_MAX_PLAINTEXT_SIZE,
    NIP44_MIN_PLAINTEXT_SIZE,
    NIP44_NONCE_SIZE,
    NIP44_SALT,
    NIP44_VERSION,
)
from .errors import CryptoError, DecryptionFailed, InvalidKey, InvalidPlaintext
from .keys import KeyPair

# 1 version byte + nonce + smallest padded block (2 + 32) + mac
MIN_PAYLOAD_SIZE = 1 + NIP44_NONCE_SIZE + 34 + NIP44_MAC_SIZE
MAX_PAYLOAD_SIZE = 1 + NIP44_NONCE_SIZE + 2 + 65536 + NIP44_MAC_SIZE


def _hmac_sha256(key: bytes, data: bytes) -> bytes:
    h = hmac.HMAC(key, hashes.SHA256())
    h.update(data)
    return h.finalize()


def get_conversation_key(keypair: KeyPair, public_key_hex: str) -> bytes:
    """HKDF-Extract over the ECDH x-coordinate. Symmetric: A->B equals B->A."""
    shared_x = keypair.shared_secret(public_key_hex)
    return _hmac_sha256(NIP44_SALT, shared_x)


def _message_keys(conversation_key: bytes, nonce: bytes) -> tuple[bytes, bytes, bytes]:
    if len(conversation_key) != 32:
        raise InvalidKey("conversation key must be 32 bytes")
    okm = HKDFExpand(algorithm=hashes.SHA256(), length=76, info=nonce).derive(conversation_key)
    # chacha_key | chacha_nonce | hmac_key
    return okm[0:32], okm[32:44], okm[44:76]


def calc_padded_len(unpadded_len: int) -> int:
    """Bucketed length: 32 bytes minimum, then power-of-two chunks."""
    if unpadded_len <= 0:
        raise InvalidPlaintext("plaintext must not be empty")
    if unpadded_len <= 32:
        return 32
    next_power = 1 << (unpadded_len - 1).bit_length()
    chunk = 32 if next_power <= 256 else next_power // 8
    return chunk * ((unpadded_len - 1) // chunk + 1)


def pad(plaintext: str) -> bytes:
    """u16 big-endian length prefix, the UTF-8 bytes, then zeros up to the bucket."""
    try:
        data = plaintext.encode("utf-8")
    except UnicodeEncodeError:
        raise InvalidPlaintext("plaintext is not encodable as UTF-8") from None
    n = len(data)
    if not NIP44_MIN_PLAINTEXT_SIZE <= n <= NIP44_MAX_PLAINTEXT_SIZE:
        raise InvalidPlaintext(
            f"plaintext must be {NIP44_MIN_PLAINTEXT_SIZE}..{NIP44_MAX_PLAINTEXT_SIZE} bytes"
        )
    return n.to_bytes(2, "big") + data + bytes(calc_padded_len(n) - n)


def unpad(padded: bytes) -> str:
    if len(padded) < 2:
        raise DecryptionFailed()
    n = int.from_bytes(padded[0:2], "big")
    data = padded[2:2 + n]
    if (
        n < NIP44_MIN_PLAINTEXT_SIZE
        or len(data) != n
        or len(padded) != 2 + calc_padded_len(n)
    ):
        raise DecryptionFailed()
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        raise DecryptionFailed() from None


def _chacha20(key: bytes, nonce12: bytes, data: bytes) -> bytes:
    # cryptography takes a 16-byte nonce: 32-bit little-endian counter (0) || 96-bit nonce
    cipher = Cipher(algorithms.ChaCha20(key, b"\x00\x00\x00\x00" + nonce12), mode=None)
    enc = cipher.encryptor()
    return enc.update(data) + enc.finalize()


def encrypt(
    plaintext: str,
    conversation_key: bytes,
    nonce: Optional[bytes] = None,
    rng: Callable[[int], bytes] = os.urandom,
) -> str:
    padded = pad(plaintext)

    if nonce is None:
        try:
            nonce = rng(NIP44_NONCE_SIZE)
        except (OSError, NotImplementedError) as e:
            raise CryptoError(f"randomness source unavailable: {type(e).__name__}") from None
    if len(nonce) != NIP44_NONCE_SIZE:
        raise CryptoError(f"nonce must be {NIP44_NONCE_SIZE} bytes")

    chacha_key, chacha_nonce, hmac_key = _message_keys(conversation_key, nonce)
    ciphertext = _chacha20(chacha_key, chacha_nonce, padded)

    body = bytes([NIP44_VERSION]) + nonce + ciphertext
    mac = _hmac_sha256(hmac_key, body)
    return base64.b64encode(body + mac).decode("ascii")


def decrypt(payload: str, conversation_key: bytes) -> str:
    """
    Reverse of encrypt. Every failure raises the same DecryptionFailed;
    nothing is returned unless the MAC checked out.
    """
    if len(conversation_key) != 32:
        raise InvalidKey("conversation key must be 32 bytes")
    if not isinstance(payload, str) or not payload or payload[0] == "#":
        raise DecryptionFailed()

    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise DecryptionFailed() from None
    # reject non-canonical base64 (stray bits in the final quantum)
    if base64.b64encode(raw).decode("ascii") != payload:
        raise DecryptionFailed()

    if not MIN_PAYLOAD_SIZE <= len(raw) <= MAX_PAYLOAD_SIZE:
        raise DecryptionFailed()
    if raw[0] != NIP44_VERSION:
        raise DecryptionFailed()

    nonce = raw[1:1 + NIP44_NONCE_SIZE]
    body, mac = raw[:-NIP44_MAC_SIZE], raw[-NIP44_MAC_SIZE:]
    ciphertext = body[1 + NIP44_NONCE_SIZE:]

    chacha_key, chacha_nonce, hmac_key = _message_keys(conversation_key, nonce)

    h = hmac.HMAC(hmac_key, hashes.SHA256())
    h.update(body)
    try:
        h.verify(mac)   # constant time
    except InvalidSignature:
        raise DecryptionFailed() from None

    return unpad(_chacha20(chacha_key, chacha_nonce, ciphertext))


def nip44_encrypt(
    keypair: KeyPair,
    recipient_pubkey_hex: str,
    plaintext: str,
    rng: Callable[[int], bytes] = os.urandom,
) -> str:
    """Encrypt from `keypair` to the recipient. Returns the base64 payload."""
    pad(plaintext)   # size check before any ECDH work
    key = get_conversation_key(keypair, recipient_pubkey_hex)
    return encrypt(plaintext, key, rng=rng)


def nip44_decrypt(keypair: KeyPair, sender_pubkey_hex: str, payload: str) -> str:
    key = get_conversation_key(keypair, sender_pubkey_hex)
    return decrypt(payload, key)
