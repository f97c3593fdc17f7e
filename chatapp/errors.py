"""Error taxonomy shared by the services and the HTTP layer.

Services raise these; ``chatapp.main`` turns them into JSON responses
with the matching status code.
"""


class ChatError(Exception):
    kind = "InternalError"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {
            "success": False,
            "kind": self.kind,
            "message": self.message,
            "statusCode": self.status_code,
        }


class ValidationError(ChatError):
    kind = "ValidationError"
    status_code = 400


class PermissionDeniedError(ChatError):
    kind = "PermissionError"
    status_code = 403


class NotFoundError(ChatError):
    kind = "NotFoundError"
    status_code = 404


class AuthError(ChatError):
    kind = "AuthError"
    status_code = 401


class ConflictError(ChatError):
    kind = "ConflictError"
    status_code = 409


class StorageError(ChatError):
    kind = "StorageError"
    status_code = 502


class InternalError(ChatError):
    kind = "InternalError"
    status_code = 500
