"""Exceptions raised by the opinion map pipeline."""


class OpinionMapError(Exception):
    """Base class for opinion map errors."""


class ActiveSessionExistsError(OpinionMapError):
    """A non-terminal session already exists for the zone."""

    def __init__(self, zone_id: str) -> None:
        super().__init__(f"An active opinion map session already exists for zone {zone_id}")
        self.zone_id = zone_id


class SessionNotFoundError(OpinionMapError):
    """No session with the given id."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class SessionCancelledError(OpinionMapError):
    """The session was cancelled while the worker was running."""


class SampleIntegrityError(OpinionMapError):
    """Too few of the sampled posts exist in the content store."""


class VectorizationError(OpinionMapError):
    """Too few posts could be vectorized."""


class NoCoherentOpinionsError(OpinionMapError):
    """Clustering produced no cluster with confident members."""


class RateLimitError(OpinionMapError):
    """The upstream AI provider rejected a call for rate limiting."""


def is_rate_limit_error(error: BaseException) -> bool:
    """Check whether an exception looks like provider rate limiting."""
    if isinstance(error, RateLimitError):
        return True
    message = str(error).lower()
    return "rate limit" in message or "429" in message
