from bech32 import bech32_decode, bech32_encode, convertbits

from .errors import InvalidKey

HEX_DIGITS = frozenset("0123456789abcdef")


def is_hex_len(s, n: int) -> bool:
    """Return True if s is a lowercase-or-uppercase hex string of exactly n chars."""
    if not isinstance(s, str) or len(s) != n:
        return False
    return all(c in HEX_DIGITS for c in s.lower())


def is_32byte_hex(s: str | None) -> bool:
    if not s:
        return False
    return is_hex_len(s.strip(), 64)


def require_32byte_hex(s: str | None, label: str, exc: type[Exception] = InvalidKey) -> str:
    """
    Validate and return normalized lowercase 64-hex (32 bytes).
    """
    if not is_32byte_hex(s):
        raise exc(f"{label} must be 64-hex (32 bytes)")
    return s.strip().lower()


def decode_nip19(bech: str) -> tuple[str, bytes]:
    hrp, data = bech32_decode(bech)
    if hrp is None or data is None:
        raise InvalidKey("Invalid bech32 string")
    decoded = convertbits(data, 5, 8, False)
    if decoded is None:
        raise InvalidKey("convertbits failed")
    return hrp, bytes(decoded)


def encode_nip19(hrp: str, data: bytes) -> str:
    words = convertbits(data, 8, 5, True)
    return bech32_encode(hrp, words)


def decode_nip19_key(bech: str, expected_hrp: str) -> bytes:
    """Decode an npub/nsec/note string, checking the prefix and the 32-byte payload."""
    hrp, data = decode_nip19(bech.strip())
    if hrp != expected_hrp or len(data) != 32:
        raise InvalidKey(f"Invalid {expected_hrp} (must decode to 32 bytes)")
    return data


def normalize_pubkey_input(s: str) -> str:
    """
    Accepts either:
      - 64-hex pubkey
      - npub1... (NIP-19)
    Returns 64-hex pubkey (lowercase).
    """
    s = (s or "").strip()

    if is_32byte_hex(s):
        return s.lower()

    if s.startswith("npub1"):
        return decode_nip19_key(s, "npub").hex()

    raise InvalidKey("pubkey must be 64-hex or npub1...")
