"""One-shot future wrapper used when no completion callback is supplied."""

import asyncio
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Deferred:
    """A pending future with resolve/reject methods.

    The instance is frozen after construction. ``resolve`` and ``reject``
    do nothing once the future has settled, so the first completion wins.
    Only ``promise`` should be handed out to callers.
    """

    promise: asyncio.Future = field(
        default_factory=lambda: asyncio.get_running_loop().create_future()
    )

    @property
    def settled(self) -> bool:
        return self.promise.done()

    def resolve(self, value: Any = None) -> None:
        """Resolve the future with ``value`` unless already settled."""
        if not self.promise.done():
            self.promise.set_result(value)

    def reject(self, reason: BaseException) -> None:
        """Reject the future with ``reason`` unless already settled."""
        if not self.promise.done():
            self.promise.set_exception(reason)
