"""
Replay protection for the payment gate.

An ERC-3009 nonce may be spent once. The gate remembers every ``(from, nonce)``
pair it accepted until the authorization's ``validBefore`` has passed; after
that the token contract itself refuses the authorization, so the entry can go.
"""

import asyncio
import time
from typing import Dict, Optional, Tuple


class NonceStore:
    """
    In-memory store of consumed authorization nonces.

    Safe for concurrent use from one event loop: ``consume`` is atomic under an
    ``asyncio.Lock``, so two requests racing with the same envelope cannot both
    pass.

    Args:
        leeway: Seconds to keep entries past ``validBefore``, matching the
            clock skew the gate tolerates during verification.
    """

    def __init__(self, leeway: int = 0) -> None:
        self._entries: Dict[Tuple[str, str], int] = {}
        self._lock = asyncio.Lock()
        self._leeway = leeway

    @staticmethod
    def _key(payer: str, nonce: str) -> Tuple[str, str]:
        return payer.lower(), nonce.lower()

    async def consume(self, payer: str, nonce: str, valid_before: int, *, now: Optional[int] = None) -> bool:
        """
        Mark ``(payer, nonce)`` as used.

        Returns:
            True if the pair was fresh, False if it was already consumed.
        """
        current = int(time.time()) if now is None else int(now)
        key = self._key(payer, nonce)
        async with self._lock:
            self._purge(current)
            if key in self._entries:
                return False
            self._entries[key] = int(valid_before) + self._leeway
            return True

    async def release(self, payer: str, nonce: str) -> None:
        """Forget a pair, e.g. when the payment was never settled."""
        async with self._lock:
            self._entries.pop(self._key(payer, nonce), None)

    async def is_consumed(self, payer: str, nonce: str) -> bool:
        async with self._lock:
            return self._key(payer, nonce) in self._entries

    def _purge(self, now: int) -> None:
        expired = [key for key, expires_at in self._entries.items() if expires_at < now]
        for key in expired:
            del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)
