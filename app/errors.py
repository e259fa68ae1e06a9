"""Error taxonomy surfaced to API callers as a typed envelope."""


class ChatBridgeError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": {"code": self.code, "message": self.message}}


class ValidationError(ChatBridgeError):
    status_code = 400
    code = "validation_error"


class UnknownIntegrationKind(ValidationError):
    code = "unknown_integration_kind"

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"No platform registered for integration kind '{kind}'")


class TooManyAttachments(ValidationError):
    code = "too_many_attachments"

    def __init__(self, count: int):
        self.count = count
        super().__init__(f"You can only attach one file, got {count}")


class NotFoundError(ChatBridgeError):
    status_code = 404
    code = "not_found"


class UpstreamError(ChatBridgeError):
    status_code = 502
    code = "upstream_error"


class PersistenceError(ChatBridgeError):
    status_code = 503
    code = "persistence_error"


class NotConfigured(ChatBridgeError):
    status_code = 503
    code = "not_configured"
