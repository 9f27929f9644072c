"""Errors raised by property access control.

Each error carries the HTTP status it is surfaced with and a message that is
safe to show to the caller.
"""


class AccessControlError(Exception):
    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthenticationError(AccessControlError):
    status_code = 401
    default_message = "Not authenticated"


class ValidationError(AccessControlError):
    status_code = 400
    default_message = "Invalid request"


class AuthorizationError(AccessControlError):
    # One message for every denial so a probe cannot tell "not yours" from "not there".
    status_code = 403
    default_message = "Access denied"


class PropertyNotFoundError(AccessControlError):
    status_code = 404
    default_message = "Property not found or not approved"


class InvalidTransitionError(AccessControlError):
    status_code = 409

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot change property status from '{current}' to '{requested}'")
