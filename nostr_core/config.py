import os

from dotenv import load_dotenv

from .errors import InvalidKey

# NIP-44 versioned encryption
NIP44_VERSION = 2
NIP44_SALT = b"nip44-v2"
NIP44_NONCE_SIZE = 32
NIP44_MAC_SIZE = 32
NIP44_MIN_PLAINTEXT_SIZE = 1
NIP44_MAX_PLAINTEXT_SIZE = 65535

# NIP-59 gift wrap
SEAL_KIND = 13
GIFT_WRAP_KIND = 1059
TIMESTAMP_TWEAK_WINDOW = 2 * 24 * 60 * 60   # two days

# NIP-06 derivation path m/44'/1237'/<account>'/0/0
NIP06_PURPOSE = 44
NIP06_COIN_TYPE = 1237
BIP39_PBKDF2_ROUNDS = 2048
BIP32_SEED_KEY = b"Bitcoin seed"

# NIP-13 mining
MINING_BATCH_SIZE = 2048
MINING_POLL_INTERVAL = 0.05   # seconds between progress/deadline checkpoints
DEFAULT_MINING_TIMEOUT = 60.0

KEY_ENV_VAR = "NOSTR_NSEC"


def load_keypair_from_env(var: str = KEY_ENV_VAR, dotenv_path: str | None = None):
    """
    Load the signing key from the environment (or a .env file).
    Accepts an nsec1... string or a 64-hex private key.
    """
    from .keys import KeyPair

    load_dotenv(dotenv_path)
    value = (os.getenv(var) or "").strip()
    if not value:
        raise InvalidKey(f"Missing {var} in environment")

    if value.startswith("nsec1"):
        return KeyPair.from_nsec(value)
    return KeyPair.from_private_key(value)
