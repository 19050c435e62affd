"""
Domain errors shared by every router and service.
Each error knows its HTTP status; app.main turns them into JSON responses.
"""


class LMSError(Exception):
    status_code = 500
    kind = "internal"
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        body = {"detail": self.message, "error": self.kind}
        if self.retryable:
            body["retryable"] = True
        return body


class NotFoundError(LMSError):
    status_code = 404
    kind = "not_found"


class InvalidArgumentError(LMSError):
    status_code = 400
    kind = "invalid_argument"


class InvalidTransitionError(InvalidArgumentError):
    """Well-formed request that the payment policy forbids"""
    status_code = 409
    kind = "invalid_transition"


class ConflictError(LMSError):
    status_code = 409
    kind = "conflict"


class UnauthorizedError(LMSError):
    status_code = 401
    kind = "unauthorized"


class ForbiddenError(LMSError):
    status_code = 403
    kind = "forbidden"


class UpstreamFailureError(LMSError):
    """Rendering or storage provider failed; the caller may retry"""
    status_code = 502
    kind = "upstream_failure"
    retryable = True
