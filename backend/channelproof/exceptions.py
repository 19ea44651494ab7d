"""
Attribution Exceptions
======================

Error types raised by the attribution and analytics services.

Fatal errors (malformed input, unknown user, queue unavailable) propagate to
the caller. Soft failures of secondary signals never raise; they are logged
and replaced with neutral defaults inside the services.

RELATED FILES
-------------
- channelproof/services/attribution/orchestrator.py: raises MalformedTransactionError
- channelproof/services/attribution/batch.py: records these per transaction
- channelproof/services/stores.py: raises UserNotFoundError for unknown users
- channelproof/routers/*.py: maps them to HTTP status codes
"""

from typing import Optional


class ChannelproofError(Exception):
    """
    Base exception for channelproof service errors.

    USAGE:
        try:
            service.attribute(user_id, txn)
        except ChannelproofError as e:
            return {"error": e.to_user_message()}
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_user_message(self) -> str:
        return self.message


class MalformedTransactionError(ChannelproofError):
    """Transaction is missing a field attribution cannot work without (id, email)."""

    def __init__(self, message: str, transaction_id: Optional[str] = None):
        super().__init__(message)
        self.transaction_id = transaction_id

    def to_user_message(self) -> str:
        if self.transaction_id:
            return f"Transaction {self.transaction_id} cannot be attributed: {self.message}"
        return f"Transaction cannot be attributed: {self.message}"


class UserNotFoundError(ChannelproofError):
    """No user exists for the requested id."""

    def __init__(self, user_id):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class JobEnqueueError(ChannelproofError):
    """Background job could not be handed to the queue."""

    def to_user_message(self) -> str:
        return "Background processing is temporarily unavailable. Please try again shortly."
