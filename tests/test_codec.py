from datetime import UTC, datetime, timedelta

import pytest

from docqueue.core import codec
from docqueue.domain.models import Message, MessageRecord

NOW = datetime(2024, 1, 1, tzinfo=UTC)


def test_new_document_fields():
    doc = codec.new_document({"to": "a@b.c"}, NOW)
    assert doc == {
        "createdAt": NOW,
        "visible": NOW,
        "payload": {"to": "a@b.c"},
        "tries": 0,
    }


def test_new_document_leaves_occurrences_to_caller():
    assert "occurrences" not in codec.new_document("x", NOW)


def test_new_document_has_no_lease_fields():
    doc = codec.new_document("x", NOW)
    assert "ack" not in doc
    assert "deleted" not in doc
    assert "updatedAt" not in doc


def test_decode_record():
    doc = {**codec.new_document([1, 2], NOW), "_id": "abc", "occurrences": 1}
    record = codec.decode_record(doc)
    assert isinstance(record, MessageRecord)
    assert record.id == "abc"
    assert record.payload == [1, 2]


def test_decode_message_from_leased_document():
    doc = {
        **codec.new_document("payload", NOW),
        "_id": "abc",
        "ack": "tok",
        "updatedAt": NOW,
        "visible": NOW + timedelta(seconds=30),
        "tries": 1,
    }
    message = codec.decode_message(doc)
    assert isinstance(message, Message)
    assert message.ack == "tok"
    assert message.tries == 1
    assert message.occurrences == 1


def test_decode_message_unleased_document_raises():
    doc = {**codec.new_document("payload", NOW), "_id": "abc"}
    with pytest.raises(ValueError):
        codec.decode_message(doc)


def test_identifier_stringifies():
    assert codec.identifier({"_id": 42}) == "42"
    assert codec.identifier({"_id": "abc"}) == "abc"
