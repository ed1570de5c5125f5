from datetime import UTC, datetime, timedelta

import pytest

from docqueue.core.filters import classify, lease_filter, matches, state_filter
from docqueue.domain.models import MessageState

NOW = datetime(2024, 1, 1, tzinfo=UTC)
LATER = NOW + timedelta(seconds=30)


def _doc(**fields):
    return {"_id": "1", "createdAt": NOW, "visible": NOW, "tries": 0, **fields}


# ---------------------------------------------------------------------------
# matches()
# ---------------------------------------------------------------------------


def test_empty_filter_matches_everything():
    assert matches(_doc(), {})


def test_equality():
    assert matches(_doc(tries=2), {"tries": 2})
    assert not matches(_doc(tries=2), {"tries": 3})


def test_none_matches_absent_or_null():
    assert matches(_doc(), {"deleted": None})
    assert matches(_doc(deleted=None), {"deleted": None})
    assert not matches(_doc(deleted=NOW), {"deleted": None})


def test_booleans_do_not_equal_numbers():
    assert not matches(_doc(flag=True), {"flag": 1})
    assert not matches(_doc(flag=0), {"flag": False})
    assert matches(_doc(flag=True), {"flag": True})
    assert matches(_doc(flag=1), {"flag": {"$ne": True}})


def test_dotted_path():
    doc = _doc(payload={"user": {"id": 7}})
    assert matches(doc, {"payload.user.id": 7})
    assert not matches(doc, {"payload.user.id": 8})
    assert not matches(doc, {"payload.missing.id": 7})


def test_dotted_path_through_non_mapping_is_missing():
    assert matches(_doc(payload="text"), {"payload.key": None})
    assert not matches(_doc(payload="text"), {"payload.key": "text"})


def test_range_operators():
    doc = _doc(visible=NOW)
    assert matches(doc, {"visible": {"$lte": NOW}})
    assert matches(doc, {"visible": {"$gte": NOW}})
    assert not matches(doc, {"visible": {"$lt": NOW}})
    assert not matches(doc, {"visible": {"$gt": NOW}})
    assert matches(doc, {"visible": {"$lt": LATER}})


def test_range_operator_on_missing_field_is_false():
    assert not matches(_doc(), {"deleted": {"$lte": NOW}})
    assert not matches(_doc(), {"deleted": {"$gt": NOW}})


def test_range_operator_on_incomparable_types_is_false():
    assert not matches(_doc(tries="three"), {"tries": {"$gt": 1}})


def test_exists():
    assert matches(_doc(ack="tok"), {"ack": {"$exists": True}})
    assert matches(_doc(), {"ack": {"$exists": False}})
    assert matches(_doc(ack=None), {"ack": {"$exists": True}})


def test_ne_none_requires_present_non_null():
    assert matches(_doc(deleted=NOW), {"deleted": {"$ne": None}})
    assert not matches(_doc(deleted=None), {"deleted": {"$ne": None}})
    assert not matches(_doc(), {"deleted": {"$ne": None}})


def test_eq_operator():
    assert matches(_doc(ack="tok"), {"ack": {"$eq": "tok"}})
    assert not matches(_doc(ack="tok"), {"ack": {"$eq": "other"}})


def test_multiple_conditions_are_anded():
    doc = _doc(ack="tok", visible=LATER)
    assert matches(doc, {"ack": "tok", "visible": {"$gt": NOW}})
    assert not matches(doc, {"ack": "tok", "visible": {"$lte": NOW}})


def test_plain_dict_value_is_equality_not_operator():
    doc = _doc(payload={"a": 1})
    assert matches(doc, {"payload": {"a": 1}})
    assert not matches(doc, {"payload": {"a": 2}})


def test_unsupported_operator_raises():
    with pytest.raises(ValueError, match=r"\$regex"):
        matches(_doc(), {"ack": {"$regex": "^t"}})


# ---------------------------------------------------------------------------
# state filters / classify()
# ---------------------------------------------------------------------------


def test_fresh_message_is_claimable():
    assert classify(_doc(), NOW) == MessageState.CLAIMABLE


def test_leased_message_is_in_flight_until_visible():
    doc = _doc(ack="tok", visible=LATER)
    assert classify(doc, NOW) == MessageState.IN_FLIGHT
    assert classify(doc, LATER - timedelta(microseconds=1)) == MessageState.IN_FLIGHT
    assert classify(doc, LATER) == MessageState.CLAIMABLE


def test_deleted_message_is_done_regardless_of_visibility():
    assert classify(_doc(ack="tok", visible=LATER, deleted=NOW), NOW) == MessageState.DONE
    assert classify(_doc(deleted=NOW), LATER) == MessageState.DONE


def test_future_visible_without_ack_is_pending():
    assert classify(_doc(visible=LATER), NOW) == MessageState.PENDING


def test_document_without_visible_cannot_be_classified():
    doc = _doc()
    del doc["visible"]
    with pytest.raises(ValueError):
        classify(doc, NOW)


@pytest.mark.parametrize(
    "doc",
    [
        _doc(),
        _doc(ack="tok", visible=LATER),
        _doc(ack="tok", visible=NOW - timedelta(seconds=1)),
        _doc(deleted=NOW),
        _doc(ack="tok", deleted=NOW, visible=LATER),
        _doc(visible=LATER),
    ],
)
def test_states_partition_documents(doc):
    matching = [s for s in MessageState if matches(doc, state_filter(s, NOW))]
    assert len(matching) == 1
    assert matching[0] == classify(doc, NOW)


def test_lease_filter_requires_token_and_live_lease():
    doc = _doc(ack="tok", visible=LATER)
    assert matches(doc, lease_filter("tok", NOW))
    assert not matches(doc, lease_filter("other", NOW))
    assert not matches(doc, lease_filter("tok", LATER))
    assert not matches({**doc, "deleted": NOW}, lease_filter("tok", NOW))
