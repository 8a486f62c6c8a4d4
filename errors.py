"""Failures raised by the service layer.

Mutations raise these; queries wrapped with :func:`authz.degrade_to` swallow
the access and lookup failures and return an empty result instead.
"""


class ServiceError(Exception):
    status_code = 400
    default_message = "Request failed."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AccessDenied(ServiceError):
    """Base for the two authorization failures."""


class NotAuthenticated(AccessDenied):
    status_code = 401
    default_message = "Not authenticated"


class NotAuthorized(AccessDenied):
    status_code = 403
    default_message = "Not authorized"


class NotFound(ServiceError):
    status_code = 404
    default_message = "Not found."


class ValidationFailed(ServiceError):
    status_code = 400
    default_message = "Invalid request."
