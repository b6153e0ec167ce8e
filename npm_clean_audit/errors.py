# Exceptions raised by the workflow and the audit service client


class AuditClientError(Exception):
    pass


class ValidationError(AuditClientError):
    """Rejected input; raised before any network call is made."""


class TransportError(AuditClientError):
    """A call to the remote audit service failed."""

    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class ParseError(AuditClientError):
    pass
