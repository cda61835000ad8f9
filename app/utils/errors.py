"""Error taxonomy shared by the REST and websocket surfaces.

Each error carries the HTTP status it maps to; handlers in ``app.main``
render them as ``{"message": ...}`` bodies.
"""


class ChatError(Exception):

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidArgument(ChatError):

    status_code = 400
    default_message = "Invalid argument"


class InvalidIdentifier(InvalidArgument):

    default_message = "Invalid conversation id"


class Unauthenticated(ChatError):

    status_code = 401
    default_message = "Missing user ID header (X-User-Id)"


class AccessDenied(ChatError):

    status_code = 403
    default_message = "Access denied"


class NotFound(ChatError):

    status_code = 404
    default_message = "Conversation not found"


class InternalError(ChatError):

    status_code = 500
