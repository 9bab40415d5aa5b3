import hashlib

import pytest

from nostr_core.keys import KeyPair

ALICE_SK = "0000000000000000000000000000000000000000000000000000000000000001"
BOB_SK = "0000000000000000000000000000000000000000000000000000000000000002"
G_X = "79be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"


class CountingRandom:
    """Deterministic byte source: SHA-256 of a seed and a running counter."""

    def __init__(self, seed: bytes = b"nostr-core-tests"):
        self.seed = seed
        self.counter = 0

    def __call__(self, n: int) -> bytes:
        out = b""
        while len(out) < n:
            out += hashlib.sha256(self.seed + self.counter.to_bytes(8, "big")).digest()
            self.counter += 1
        return out[:n]


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0, step: float = 0.0):
        self.now = start
        self.step = step

    def __call__(self) -> float:
        t = self.now
        self.now += self.step
        return t


@pytest.fixture
def alice():
    return KeyPair.from_private_key(ALICE_SK)


@pytest.fixture
def bob():
    return KeyPair.from_private_key(BOB_SK)


@pytest.fixture
def rng():
    return CountingRandom()


@pytest.fixture
def clock():
    return FakeClock()
