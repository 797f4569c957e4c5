"""Cooperative cancellation for resolution requests."""


class CancellationToken:
    """A flag polled by the resolver between lines and while cache work is pending.

    Cancelling never raises inside the resolver. Line collection stops, cache
    work still pending for the request is abandoned, and the request completes
    with the results finished so far. Shared cache entries keep running.
    """

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


# Shared token for callers that never cancel
NEVER_CANCELLED = CancellationToken()
