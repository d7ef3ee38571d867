"""Cooperative cancellation for a single execution manager."""

import threading


class CancellationToken:
    """
    Mutable stop flag sampled at checkpoints.

    Setting it never interrupts an in-flight call; it only prevents the
    next irreversible step from starting. The same token object is handed to
    collaborators so they observe changes made after the call began.
    """

    def __init__(self, cancelled: bool = False):
        self._event = threading.Event()
        if cancelled:
            self._event.set()

    def cancel(self) -> None:
        self._event.set()

    def reset(self) -> None:
        self._event.clear()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def should_continue(self) -> bool:
        return not self._event.is_set()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_cancelled})"
