import pytest

from docqueue.domain.errors import (
    ConfigurationError,
    DedupKeyError,
    DocQueueError,
    StorageError,
    UnidentifiedAckError,
)


def test_docqueue_error_is_exception():
    err = DocQueueError("test message")
    assert isinstance(err, Exception)
    assert str(err) == "test message"


def test_configuration_error_is_docqueue_error():
    err = ConfigurationError("Please provide a queue name")
    assert isinstance(err, DocQueueError)
    assert str(err) == "Please provide a queue name"


def test_unidentified_ack_stores_token_and_operation():
    err = UnidentifiedAckError("abc123", "ping")
    assert isinstance(err, DocQueueError)
    assert err.ack == "abc123"
    assert err.operation == "ping"


def test_unidentified_ack_message_format():
    err = UnidentifiedAckError("abc123", "ack")
    assert str(err) == "Queue.ack(): Unidentified ack : abc123"


def test_dedup_key_error_is_key_error():
    err = DedupKeyError("url")
    assert isinstance(err, DocQueueError)
    assert isinstance(err, KeyError)
    assert err.key == "url"


def test_dedup_key_error_message_is_not_quoted_twice():
    err = DedupKeyError("url")
    assert str(err) == "Dedup key 'url' not present in payload"


def test_dedup_key_error_custom_reason():
    err = DedupKeyError("url", "is None in payload")
    assert str(err) == "Dedup key 'url' is None in payload"


def test_storage_error_stores_cause_and_message():
    cause = RuntimeError("connection refused")
    err = StorageError("MongoDB count failed", cause)
    assert isinstance(err, DocQueueError)
    assert err.cause is cause
    assert "MongoDB count failed" in str(err)
    assert "connection refused" in str(err)


def test_error_hierarchy():
    assert issubclass(ConfigurationError, DocQueueError)
    assert issubclass(UnidentifiedAckError, DocQueueError)
    assert issubclass(DedupKeyError, DocQueueError)
    assert issubclass(StorageError, DocQueueError)
    assert issubclass(DocQueueError, Exception)


def test_can_catch_subclass_as_base():
    with pytest.raises(DocQueueError):
        raise UnidentifiedAckError("token", "ack")
