class SiteGenError(Exception):
    code = "SITEGEN_ERROR"


class InvalidRequestError(SiteGenError):
    code = "INVALID_REQUEST"


class GenerationError(SiteGenError):
    """A generative call failed or produced nothing usable."""
    code = "GENERATION_FAILED"

    def __init__(self, message: str, status: int = None, retryable: bool = False):
        super().__init__(message)
        self.status    = status
        self.retryable = retryable


class RateLimitError(GenerationError):
    code = "RATE_LIMITED"

class AuthError(GenerationError):
    code = "AUTH_FAILED"

class QuotaError(GenerationError):
    code = "QUOTA_EXCEEDED"

class MalformedResponseError(GenerationError):
    code = "MALFORMED_RESPONSE"


class PatchError(SiteGenError):
    code = "PATCH_INVALID"

    def __init__(self, message: str, reason: str = "context-mismatch"):
        super().__init__(message)
        self.reason = reason


class ProjectBusyError(SiteGenError):
    code = "PROJECT_LOCKED"

    def __init__(self, project: str):
        super().__init__(f"Project '{project}' is already being processed. Try again shortly.")
        self.project = project
