"""Exceptions that map onto HTTP error responses."""


class GatewayError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequest(GatewayError):
    status_code = 400


class Unauthorized(GatewayError):
    status_code = 401


class PayloadTooLarge(GatewayError):
    status_code = 413


class DatabaseUnavailable(GatewayError):
    status_code = 503

    def __init__(self, message: str = "Database not connected"):
        super().__init__(message)


class DriverError(GatewayError):
    """The database driver failed during an operation; carries the driver's own message."""

    status_code = 500
