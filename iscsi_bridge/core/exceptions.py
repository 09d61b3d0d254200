# iscsi_bridge/core/exceptions.py


class ServiceError(Exception):
    """Base exception for failures talking to the storage service over D-Bus."""
    pass


class BusCallError(ServiceError):
    """Raised when the bus answers a method call with an error reply."""
    def __init__(self, error_name: str, message: str):
        self.error_name = error_name
        super().__init__(f"{message} ({error_name})")


class BusTimeoutError(ServiceError):
    """Raised when a bus round trip does not complete in time."""
    pass


class MalformedReplyError(ServiceError):
    """Raised when a reply body does not have the expected shape."""
    pass


class UnsuccessfulActionError(ServiceError):
    """Raised when the service reports a non-zero status for an action."""
    def __init__(self, action: str, code: int):
        self.action = action
        self.code = code
        super().__init__(f"Could not {action} (status {code})")


class SubscriptionError(ServiceError):
    """Raised when a signal subscription cannot be set up."""
    pass
