"""NIP-13 proof of work.

Difficulty is the number of leading zero bits of the event id. Mining bumps a
["nonce", <counter>, <target>] tag until the id reaches the target. The
search polls its cancellation flag on every attempt and reaches a deadline
and progress checkpoint at least every `poll_interval` seconds.
"""

import asyncio
import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Union

from .config import DEFAULT_MINING_TIMEOUT, MINING_BATCH_SIZE, MINING_POLL_INTERVAL
from .errors import MiningCancelled, MiningTimeout
from .event import Event, UnsignedEvent, compute_event_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MiningProgress:
    iterations: int
    nonce: int
    elapsed: float

    @property
    def hash_rate(self) -> float:
        return self.iterations / self.elapsed if self.elapsed > 0 else 0.0


def difficulty(event_id: Union[str, bytes]) -> int:
    """Leading zero bits of a 32-byte id (hex or raw), 0..256."""
    raw = bytes.fromhex(event_id) if isinstance(event_id, str) else bytes(event_id)
    if len(raw) != 32:
        raise ValueError("event id must be 32 bytes")
    return 256 - int.from_bytes(raw, "big").bit_length()


def extract_nonce(event: Union[UnsignedEvent, Event]) -> Optional[Tuple[int, int]]:
    """(nonce, committed target) from the first well-formed nonce tag."""
    for tag in event.tags:
        if len(tag) >= 3 and tag[0] == "nonce":
            try:
                return int(tag[1]), int(tag[2])
            except ValueError:
                continue
    return None


def verify_proof_of_work(
    event: Union[UnsignedEvent, Event],
    min_difficulty: int,
    require_commitment: bool = False,
) -> bool:
    """
    Recompute the id from the fields; a stored id is never trusted.

    With `require_commitment`, the event must also carry a nonce tag whose
    committed target the id actually meets.
    """
    event_id = compute_event_id(event.pubkey, event.created_at, event.kind, event.tags, event.content)
    actual = difficulty(event_id)
    if actual < min_difficulty:
        return False
    if require_commitment:
        committed = extract_nonce(event)
        if committed is None or actual < committed[1]:
            return False
    return True


def estimate_time(target_difficulty: int, hash_rate: float) -> float:
    """Expected seconds to reach the target at `hash_rate` hashes per second."""
    if target_difficulty <= 0 or hash_rate <= 0:
        return 0.0
    return (2.0 ** target_difficulty) / hash_rate


def _canonical_template(event: UnsignedEvent, tags: list, target: str) -> Tuple[bytes, bytes]:
    """Canonical form split around the nonce counter of a trailing nonce tag."""
    head = json.dumps([0, event.pubkey.lower(), event.created_at, event.kind], separators=(",", ":"))[:-1]
    tags_open = json.dumps(tags, separators=(",", ":"), ensure_ascii=True)[:-1]
    prefix = head + "," + tags_open + ("," if tags else "") + '["nonce","'
    suffix = '","' + target + '"]],' + json.dumps(event.content, ensure_ascii=True) + "]"
    return prefix.encode("utf-8"), suffix.encode("utf-8")


def mine(
    event: UnsignedEvent,
    target_difficulty: int,
    deadline: Optional[float] = None,
    timeout: Optional[float] = None,
    unbounded: bool = False,
    cancel: Optional[threading.Event] = None,
    on_progress: Optional[Callable[[MiningProgress], None]] = None,
    start_nonce: int = 0,
    batch_size: int = MINING_BATCH_SIZE,
    poll_interval: float = MINING_POLL_INTERVAL,
    clock: Callable[[], float] = time.monotonic,
) -> UnsignedEvent:
    """
    Search nonces until the id has `target_difficulty` leading zero bits.

    `deadline` is an absolute time on `clock`; `timeout` is relative seconds.
    With neither, DEFAULT_MINING_TIMEOUT applies unless `unbounded=True`.
    A checkpoint (progress report, deadline check) happens after
    `batch_size` attempts or `poll_interval` seconds, whichever comes first.
    Returns the unsigned mined event; the caller signs it.
    """
    if not 0 <= target_difficulty <= 256:
        raise ValueError("target difficulty must be between 0 and 256")
    batch_size = max(1, batch_size)

    start = clock()
    if deadline is None and timeout is not None:
        deadline = start + timeout
    if deadline is None and not unbounded:
        deadline = start + DEFAULT_MINING_TIMEOUT

    if deadline is not None and start >= deadline:
        raise MiningTimeout("deadline already passed")
    if target_difficulty == 0:
        return event

    tags = [list(t) for t in event.tags if not (t and t[0] == "nonce")]
    target = str(target_difficulty)
    prefix, suffix = _canonical_template(event, tags, target)
    base = hashlib.sha256(prefix)

    nonce = start_nonce
    iterations = 0
    batch_start = start
    in_batch = 0

    while True:
        if cancel is not None and cancel.is_set():
            raise MiningCancelled(f"cancelled after {iterations} iterations")

        h = base.copy()
        h.update(str(nonce).encode("ascii"))
        h.update(suffix)
        iterations += 1
        if difficulty(h.digest()) >= target_difficulty:
            logger.debug(
                "mined difficulty %d after %d iterations (%.2fs)",
                target_difficulty, iterations, clock() - start,
            )
            return event.with_tags(tags + [["nonce", str(nonce), target]])
        nonce += 1
        in_batch += 1

        now = clock()
        timed_out = deadline is not None and now >= deadline
        if in_batch >= batch_size or now - batch_start >= poll_interval or timed_out:
            if on_progress is not None:
                on_progress(MiningProgress(iterations=iterations, nonce=nonce, elapsed=now - start))
            if timed_out:
                raise MiningTimeout(f"no difficulty {target_difficulty} id after {iterations} iterations")
            batch_start = now
            in_batch = 0


async def mine_async(event: UnsignedEvent, target_difficulty: int, **kwargs) -> UnsignedEvent:
    """Run `mine` in a worker thread; cancelling the awaiting task stops the search."""
    cancel = kwargs.pop("cancel", None) or threading.Event()
    try:
        return await asyncio.to_thread(mine, event, target_difficulty, cancel=cancel, **kwargs)
    except asyncio.CancelledError:
        cancel.set()
        raise
