"""Exceptions raised by the delivery layer.

Only structural problems are raised. Provider and network failures are
recorded on the attempt (``result.error_code`` / ``result.error_message``)
and never propagate.
"""


class DeliveryError(Exception):
    """Base class for delivery errors."""


class DeliveryValidationError(DeliveryError, ValueError):
    """A delivery attempt was constructed with invalid or missing data."""


class InvalidTransitionError(DeliveryError):
    """A state-machine transition is not allowed from the current status."""

    def __init__(self, attempt_id: str, current: str, target: str) -> None:
        self.attempt_id = attempt_id
        self.current = current
        self.target = target
        super().__init__(
            f"Attempt {attempt_id}: cannot transition from {current!r} to {target!r}"
        )
