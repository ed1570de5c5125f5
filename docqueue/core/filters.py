"""
Message state filters — the one definition of CLAIMABLE / IN_FLIGHT / DONE.

The stored document encodes state implicitly through optional fields:

  deleted present (non-null)              → DONE
  deleted absent, visible <= now          → CLAIMABLE
  deleted absent, visible >  now, ack set → IN_FLIGHT
  deleted absent, visible >  now, no ack  → PENDING

_STATE_FILTERS maps each state to the store filter that selects it. The four
states partition every document that carries a `visible` timestamp.

Everything that needs a state goes through this table:
  - DocumentQueue.get/ping/ack build their selection filters from it
  - DocumentQueue.size/in_flight/done count with it
  - classify() evaluates it against a single document via matches()
  - InMemoryDocumentStore executes queries with the same matches()
"""

from __future__ import annotations

import operator
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from docqueue.domain.models import MessageState
from docqueue.ports.store import Document, Filter

_STATE_FILTERS: dict[MessageState, Callable[[datetime], dict[str, Any]]] = {
    MessageState.DONE: lambda now: {"deleted": {"$ne": None}},
    MessageState.CLAIMABLE: lambda now: {
        "deleted": None,
        "visible": {"$lte": now},
    },
    MessageState.IN_FLIGHT: lambda now: {
        "deleted": None,
        "ack": {"$ne": None},
        "visible": {"$gt": now},
    },
    MessageState.PENDING: lambda now: {
        "deleted": None,
        "ack": None,
        "visible": {"$gt": now},
    },
}


def state_filter(state: MessageState, now: datetime) -> dict[str, Any]:
    """Store filter selecting every document in `state` at instant `now`."""
    return _STATE_FILTERS[state](now)


def lease_filter(ack: str, now: datetime) -> dict[str, Any]:
    """Store filter selecting the IN_FLIGHT document whose lease token is `ack`."""
    return {**state_filter(MessageState.IN_FLIGHT, now), "ack": ack}


def classify(document: Document, now: datetime) -> MessageState:
    """Derive the state of a single stored document at instant `now`."""
    for state, build in _STATE_FILTERS.items():
        if matches(document, build(now)):
            return state
    raise ValueError(f"Document {document.get('_id')!r} has no visible timestamp")


# ---------------------------------------------------------------------- #
# Filter evaluation                                                        #
# ---------------------------------------------------------------------- #

_MISSING: Any = object()

_COMPARATORS: dict[str, Callable[[Any, Any], bool]] = {
    "$lt": operator.lt,
    "$lte": operator.le,
    "$gt": operator.gt,
    "$gte": operator.ge,
}


def resolve(document: Mapping[str, Any], path: str) -> Any:
    """Follow a dotted path into nested mappings. Returns _MISSING if absent."""
    value: Any = document
    for part in path.split("."):
        if isinstance(value, Mapping) and part in value:
            value = value[part]
        else:
            return _MISSING
    return value


def is_missing(value: Any) -> bool:
    return value is _MISSING


def matches(document: Mapping[str, Any], filter: Filter) -> bool:
    """
    Evaluate a store filter against one document.

    Pure function; supports the subset of the query dialect documented in
    docqueue.ports.store.
    """
    return all(
        _match_condition(resolve(document, path), condition)
        for path, condition in filter.items()
    )


def _is_operator_expression(condition: Any) -> bool:
    return (
        isinstance(condition, Mapping)
        and bool(condition)
        and all(str(key).startswith("$") for key in condition)
    )


def _match_condition(value: Any, condition: Any) -> bool:
    if _is_operator_expression(condition):
        return all(
            _apply_operator(value, op, operand) for op, operand in condition.items()
        )
    return _equals(value, condition)


def _equals(value: Any, expected: Any) -> bool:
    if expected is None:
        return value is _MISSING or value is None
    # BSON keeps booleans and numbers apart.
    if isinstance(value, bool) != isinstance(expected, bool):
        return False
    return value is not _MISSING and value == expected


def _apply_operator(value: Any, op: str, operand: Any) -> bool:
    match op:
        case "$eq":
            return _equals(value, operand)
        case "$ne":
            return not _equals(value, operand)
        case "$exists":
            return (value is not _MISSING) == bool(operand)
        case "$lt" | "$lte" | "$gt" | "$gte":
            if value is _MISSING or value is None:
                return False
            try:
                return _COMPARATORS[op](value, operand)
            except TypeError:
                return False
        case _:
            raise ValueError(f"Unsupported query operator: {op}")
