"""FIFO buffer for remote candidates that arrive before a remote description."""

from collections import deque
from typing import Optional

import structlog

from p2pcall.peer.base import IceCandidate

logger = structlog.get_logger(__name__)


class CandidateQueue:
    """Ordered pending-candidate buffer with de-duplication.

    Entries are kept with the identity of their sender because a candidate
    can arrive before the session knows who its remote party is. Nothing is
    ever dropped for capacity reasons; only exact duplicates of a candidate
    that is already queued or already applied are skipped.
    """

    def __init__(self) -> None:
        self._buffer: deque[tuple[Optional[str], IceCandidate]] = deque()
        self._seen: set[tuple[str, Optional[str], Optional[int]]] = set()

    def __len__(self) -> int:
        return len(self._buffer)

    def is_empty(self) -> bool:
        return not self._buffer

    def snapshot(self) -> tuple[IceCandidate, ...]:
        """Queued candidates in receipt order."""
        return tuple(candidate for _, candidate in self._buffer)

    def was_seen(self, candidate: IceCandidate) -> bool:
        """Whether an identical candidate was already queued or applied."""
        return candidate.key in self._seen

    def mark_applied(self, candidate: IceCandidate) -> bool:
        """Record a candidate applied directly to the peer link.

        Returns:
            False if it is a duplicate and must not be applied again
        """
        if candidate.key in self._seen:
            return False
        self._seen.add(candidate.key)
        return True

    def push(self, sender: Optional[str], candidate: IceCandidate) -> bool:
        """Queue a candidate.

        Args:
            sender: Identity the candidate came from
            candidate: The candidate

        Returns:
            True if queued, False if it was a duplicate
        """
        if candidate.key in self._seen:
            logger.debug("Duplicate candidate skipped", sender=sender)
            return False
        self._seen.add(candidate.key)
        self._buffer.append((sender, candidate))
        return True

    def drain(self, sender: str) -> list[IceCandidate]:
        """Remove all queued candidates and return those from ``sender``.

        Candidates from any other identity are discarded.

        Returns:
            Candidates from ``sender`` in receipt order
        """
        drained: list[IceCandidate] = []
        discarded = 0
        while self._buffer:
            origin, candidate = self._buffer.popleft()
            if origin == sender:
                drained.append(candidate)
            else:
                self._seen.discard(candidate.key)
                discarded += 1
        if discarded:
            logger.info(
                "Discarded candidates from unexpected sender",
                expected=sender,
                count=discarded
            )
        return drained

    def clear(self) -> int:
        """Forget queued and applied candidates.

        Returns:
            Number of queued candidates dropped
        """
        count = len(self._buffer)
        self._buffer.clear()
        self._seen.clear()
        return count
