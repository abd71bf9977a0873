"""Error kinds raised inside the agent.

Only ConfigurationError is allowed to escape (at startup). The others are
turned into failure results at the operation dispatch boundary.
"""


class DiscourseError(Exception):
    """Base class for every error raised by the agent."""


class ConfigurationError(DiscourseError):
    """Required configuration is missing; the agent cannot start."""


class ValidationError(DiscourseError):
    """Operation parameters do not match the declared schema."""


class UpstreamError(DiscourseError):
    """The forum API answered outside the success range, or did not answer."""

    def __init__(self, status: int | None, status_text: str) -> None:
        self.status = status
        self.status_text = status_text
        if status is None:
            message = f"Discourse API error: {status_text}"
        else:
            message = f"Discourse API error: {status} {status_text}"
        super().__init__(message)


class ProjectionError(DiscourseError):
    """An upstream payload could not be mapped onto a result record."""
