"""
Error taxonomy for quiz generation
"""
from typing import Optional


class QuizError(Exception):
    """Base class for errors raised inside the generation pipeline"""


class InputError(QuizError):
    """Content too short or malformed form fields; shown to the user as-is"""


class GenerationServiceFailure(QuizError):
    """The generative question service failed or returned unusable data"""


class SanitizationImpossible(QuizError):
    """A question could not be brought to four unique options"""


class RateLimitExceeded(QuizError):
    def __init__(self, message: str, retry_after: int, result=None):
        super().__init__(message)
        self.retry_after = retry_after
        self.result = result

    @property
    def headers(self) -> dict:
        from adaptiquiz.middleware.rate_limit import rate_limit_headers

        headers = rate_limit_headers(self.result) if self.result is not None else {}
        headers["Retry-After"] = str(self.retry_after or 60)
        return headers


def retry_message(action: Optional[str], retry_after: int) -> str:
    if action:
        return f"Rate limit exceeded for {action}. Try again in {retry_after} seconds."
    return f"Too many requests. Try again in {retry_after} seconds."
