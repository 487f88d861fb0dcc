"""Errors raised by the feed query engine and its collaborators."""


class FeedQueryError(Exception):
    """Base class for feed query failures."""


class MalformedFilterError(FeedQueryError, ValueError):
    """A filter value could not be parsed (bad identifier or date)."""

    def __init__(self, field: str, value: str, reason: str = "malformed value"):
        self.field = field
        self.value = value
        super().__init__(f"Invalid value for filter '{field}': {value!r} ({reason})")


class SimilarityUnavailable(FeedQueryError):
    """The nearest-neighbour collaborator failed or timed out."""


class SearchUnavailable(FeedQueryError):
    """The external search collaborator failed or timed out."""
