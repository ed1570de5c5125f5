"""
Exception hierarchy for docqueue.

DocQueueError
├── ConfigurationError    — queue constructed without a store, name, or a sane visibility
├── UnidentifiedAckError  — ping/ack token matches no live lease
├── DedupKeyError         — mapping payload does not contain the dedup key
└── StorageError          — underlying I/O failure (wraps original exception)
"""

from __future__ import annotations


class DocQueueError(Exception):
    """Base class for all docqueue exceptions."""


class ConfigurationError(DocQueueError):
    """
    Raised when a DocumentQueue is constructed with invalid configuration.

    Not retryable; fix the call site.
    """


class UnidentifiedAckError(DocQueueError):
    """
    Raised by ping() and ack() when the token matches no live lease.

    The token is unknown, its lease already expired, or the message was
    already acknowledged. Either way the caller no longer holds the message
    and should get() again.

    Attributes
    ----------
    ack       : the token that was presented
    operation : "ping" or "ack"
    """

    def __init__(self, ack: str, operation: str) -> None:
        self.ack = ack
        self.operation = operation
        super().__init__(f"Queue.{operation}(): Unidentified ack : {ack}")


class DedupKeyError(DocQueueError, KeyError):
    """Raised when add() is given a dedup key the mapping payload lacks or nulls."""

    def __init__(self, key: str, reason: str = "not present in payload") -> None:
        self.key = key
        super().__init__(f"Dedup key {key!r} {reason}")

    def __str__(self) -> str:
        return str(self.args[0])


class StorageError(DocQueueError):
    """
    Wraps an underlying I/O failure from a document store adapter.

    Attributes
    ----------
    cause : Exception
        The original exception from the storage backend.
    """

    def __init__(self, message: str, cause: Exception) -> None:
        self.cause = cause
        super().__init__(f"{message}: {cause}")
