#!/usr/bin/env python3
"""
Restart request flag
At most one pending request per worker; extra requests are dropped
"""

import asyncio
from typing import Optional


class RestartSignal:
    """Single-slot, non-blocking restart request"""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def request(self, reason: str) -> bool:
        """Set the flag; False when a request is already pending"""
        if self._event.is_set():
            return False
        self.reason = reason
        self._event.set()
        return True

    def is_pending(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> str:
        await self._event.wait()
        return self.reason or ""

    def consume(self) -> Optional[str]:
        """Clear the flag and return the pending reason, if any"""
        if not self._event.is_set():
            return None
        reason, self.reason = self.reason, None
        self._event.clear()
        return reason
