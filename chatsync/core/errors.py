"""
Error taxonomy for the messaging core.

Every error carries the HTTP status the API layer answers with, so routes
never translate exceptions by hand.
"""


class ChatSyncError(Exception):
    """Base class for all errors raised by the messaging core."""

    status_code = 500

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.__class__.__name__)
        self.detail = detail or self.__class__.__name__


class InvalidRecipient(ChatSyncError):
    """Descriptor is neither a valid identity nor an E.164 phone number."""

    status_code = 422


class InvalidMessage(ChatSyncError):
    """Message has neither content nor a media reference."""

    status_code = 422


class ConversationNotFound(ChatSyncError):
    status_code = 404


class Unauthorized(ChatSyncError):
    """Identity is not a participant (or owner) of the conversation."""

    status_code = 403


class StorageUnavailable(ChatSyncError):
    status_code = 503


class DuplicateMessage(ChatSyncError):
    """A message with the same external id was already ingested."""

    status_code = 409


class ContactExists(ChatSyncError):
    status_code = 409


class DuplicateKey(Exception):
    """Raised by stores when a uniqueness constraint rejects an insert.

    Internal to the store/registry seam; never surfaced to API callers.
    """

    def __init__(self, constraint: str):
        super().__init__(constraint)
        self.constraint = constraint
