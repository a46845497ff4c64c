"""Exception taxonomy for event processing.

Collaborator adapters translate library exceptions (requests, redis,
SQLAlchemy, slack_sdk) into these types so the pipeline can decide, per kind,
whether an event is aborted, a segment is skipped, or a chunk is dropped.
"""

from __future__ import annotations


class SpherebotError(Exception):
    """Base class for errors raised by spherebot."""


class DuplicateEvent(SpherebotError):
    """The event id was already admitted inside the dedup window."""


class ContextCreationFailure(SpherebotError):
    """A remote thread could not be created for a new chat thread."""


class UpstreamError(SpherebotError):
    """The LLM backend failed or returned an unusable response."""


class UpstreamTimeout(UpstreamError):
    """The LLM backend did not answer within the configured timeout."""


class RenderFailure(SpherebotError):
    """A segment could not be converted into a display block."""


class DeliveryFailure(SpherebotError):
    """The messaging platform rejected a post, update or delete."""

    def __init__(self, message: str, *, error_code: str | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code


class StoreUnavailable(SpherebotError):
    """The shared key-value store could not be reached."""


class MappingStoreUnavailable(StoreUnavailable):
    """The relational thread-mapping store could not be reached."""


__all__ = [
    "SpherebotError",
    "DuplicateEvent",
    "ContextCreationFailure",
    "UpstreamError",
    "UpstreamTimeout",
    "RenderFailure",
    "DeliveryFailure",
    "StoreUnavailable",
    "MappingStoreUnavailable",
]
