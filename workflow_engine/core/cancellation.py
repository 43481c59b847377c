"""
Cancellation signal shared between a host, the orchestrator and the
task executor.

A token can be cancelled explicitly, after a deadline, or through a parent
token. Waiting on a token never raises; callers check ``is_cancelled``.
"""

import asyncio
from typing import List, Optional


class CancellationToken:
    """Cooperative cancellation signal for one or more executions."""

    def __init__(self, parent: Optional["CancellationToken"] = None):
        self._event: Optional[asyncio.Event] = None
        self._cancelled = False
        self._reason: Optional[str] = None
        self._children: List["CancellationToken"] = []
        self._deadline_handle: Optional[asyncio.TimerHandle] = None
        self._parent = parent

        if parent is not None:
            parent._children.append(self)
            if parent.is_cancelled:
                self.cancel(parent.reason)

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: Optional[str] = None):
        """Request cancellation. Idempotent; propagates to linked tokens."""
        if self._cancelled:
            return

        self._cancelled = True
        self._reason = reason or "cancellation requested"

        if self._event is not None:
            self._event.set()
        if self._deadline_handle is not None:
            self._deadline_handle.cancel()
            self._deadline_handle = None

        for child in list(self._children):
            child.cancel(self._reason)

    def cancel_after(self, seconds: float):
        """Cancel the token once ``seconds`` have elapsed on the running loop."""
        loop = asyncio.get_running_loop()
        if self._deadline_handle is not None:
            self._deadline_handle.cancel()
        self._deadline_handle = loop.call_later(seconds, self.cancel, f"deadline of {seconds}s exceeded")

    def create_linked(self) -> "CancellationToken":
        """Create a child token cancelled whenever this one is."""
        return CancellationToken(parent=self)

    def detach(self):
        """
        Unlink this token from its parent.

        Call once the work the token guards has finished; the parent then no
        longer holds a reference to it. The token keeps its own state.
        """
        if self._parent is None:
            return
        if self in self._parent._children:
            self._parent._children.remove(self)
        self._parent = None
        if self._deadline_handle is not None:
            self._deadline_handle.cancel()
            self._deadline_handle = None

    async def wait(self):
        """Block until the token is cancelled."""
        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        await self._event.wait()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled})"
