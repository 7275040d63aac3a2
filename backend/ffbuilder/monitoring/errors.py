"""
Monitoring-specific errors.

Delivery to an observer is best-effort. These errors mark an observer
as unusable; the broadcaster drops it and carries on.
"""


class MonitoringError(Exception):
    """Base exception for monitoring operations."""
    pass


class DeliveryError(MonitoringError):
    """Raised when an event cannot be handed to an observer."""

    def __init__(self, observer_id: str, reason: str):
        self.observer_id = observer_id
        self.reason = reason
        super().__init__(f"Delivery to observer {observer_id} failed: {reason}")


class ObserverClosedError(DeliveryError):
    """Raised when delivering to an observer that has been closed."""

    def __init__(self, observer_id: str):
        super().__init__(observer_id, "observer closed")
