import pytest
from savekit.save.aggregator import RETIRED_LIMIT, OperationState, RegisterResult, ResponseAggregator
from savekit.save.errors import OperationError


@pytest.fixture
def finished():
    return []


@pytest.fixture
def aggregator(clock, finished):
    return ResponseAggregator(on_finished=finished.append, clock=clock)


def test_completes_when_all_expected_respond(aggregator, finished):
    op = aggregator.open("op-1", 2, 3, timeout=5.0)

    assert aggregator.register_response("op-1", "A", "a") is RegisterResult.ACCEPTED
    assert aggregator.register_response("op-1", "B", "b") is RegisterResult.ACCEPTED
    assert finished == []
    assert aggregator.register_response("op-1", "C", "c") is RegisterResult.ACCEPTED

    assert finished == [op]
    assert op.state is OperationState.COMPLETE
    assert op.collected() == {"A": "a", "B": "b", "C": "c"}
    assert aggregator.active_operations == []

def test_duplicate_response_counted_once(aggregator):
    op = aggregator.open("op-1", 1, 3)

    aggregator.register_response("op-1", "A", "first")
    result = aggregator.register_response("op-1", "A", "second")

    assert result is RegisterResult.DUPLICATE
    assert op.systems_responded == 1
    assert op.collected() == {"A": "first"}

def test_response_after_completion_is_closed(aggregator, finished):
    aggregator.open("op-1", 1, 1)
    aggregator.register_response("op-1", "A", "a")

    assert aggregator.register_response("op-1", "B", "b") is RegisterResult.CLOSED
    assert len(finished) == 1

def test_unknown_operation(aggregator):
    assert aggregator.register_response("nope", "A", "a") is RegisterResult.UNKNOWN_OPERATION

def test_unexpected_system(aggregator):
    op = aggregator.open("op-1", 1, 2, expected_names=frozenset({"A", "B"}))

    assert aggregator.register_response("op-1", "Z", "z") is RegisterResult.UNEXPECTED
    assert op.systems_responded == 0

def test_empty_system_name_rejected(aggregator):
    aggregator.open("op-1", 1, 2)
    assert aggregator.register_response("op-1", "", "x") is RegisterResult.REJECTED

def test_failed_responses_not_collected(aggregator):
    op = aggregator.open("op-1", 1, 2)

    aggregator.register_response("op-1", "A", "a")
    aggregator.register_response("op-1", "B", "", success=False)

    assert op.state is OperationState.COMPLETE
    assert op.collected() == {"A": "a"}
    assert op.failed_systems() == ["B"]

def test_timeout_with_partial_responses(aggregator, clock, finished):
    op = aggregator.open("op-1", 2, 3, expected_names=frozenset({"A", "B", "C"}), timeout=5.0)
    aggregator.register_response("op-1", "A", "a")
    aggregator.register_response("op-1", "B", "b")

    clock.advance(4.9)
    assert aggregator.poll() == []

    clock.advance(0.2)
    assert aggregator.poll() == [op]

    assert finished == [op]
    assert op.state is OperationState.TIMED_OUT
    assert "2 of 3" in op.error
    assert "missing: C" in op.error
    assert op.collected() == {"A": "a", "B": "b"}
    assert aggregator.register_response("op-1", "C", "c") is RegisterResult.CLOSED

def test_no_timeout_after_completion(aggregator, clock, finished):
    aggregator.open("op-1", 1, 1, timeout=1.0)
    aggregator.register_response("op-1", "A", "a")

    clock.advance(10.0)

    assert aggregator.poll() == []
    assert len(finished) == 1
    assert finished[0].state is OperationState.COMPLETE

def test_cancel(aggregator, finished):
    op = aggregator.open("op-1", 1, 2, timeout=1.0)

    assert aggregator.cancel("op-1", "Shutting down")
    assert not aggregator.cancel("op-1")

    assert op.state is OperationState.CANCELLED
    assert op.error == "Shutting down"
    assert finished == [op]

def test_finalize_with_zero_expected(aggregator, finished):
    op = aggregator.open("op-1", 1, 0)
    aggregator.register_response("op-1", "A", "a")
    aggregator.register_response("op-1", "B", "b")

    assert op.state is OperationState.COLLECTING
    assert aggregator.finalize("op-1")
    assert not aggregator.finalize("op-1")
    assert op.state is OperationState.COMPLETE
    assert finished == [op]

def test_operation_id_cannot_be_reused(aggregator):
    aggregator.open("op-1", 1, 1)
    with pytest.raises(OperationError):
        aggregator.open("op-1", 1, 1)

    aggregator.cancel("op-1")
    with pytest.raises(OperationError):
        aggregator.open("op-1", 1, 1)
    assert aggregator.is_known("op-1")

def test_is_collecting(aggregator):
    aggregator.open("op-1", 3, 1)
    assert aggregator.is_collecting(3)
    assert not aggregator.is_collecting(2)

    aggregator.register_response("op-1", "A", "a")
    assert not aggregator.is_collecting(3)

def test_independent_operations(aggregator):
    first = aggregator.open("op-1", 1, 1)
    second = aggregator.open("op-2", 2, 1)

    aggregator.register_response("op-2", "A", "two")

    assert first.state is OperationState.COLLECTING
    assert second.collected() == {"A": "two"}
    assert aggregator.get("op-1") is first
    assert aggregator.get("op-2") is None

def test_retired_ids_are_bounded(clock):
    aggregator = ResponseAggregator(clock=clock, retired_limit=3)
    for i in range(10):
        aggregator.open(f"op-{i}", 1, 0)
        aggregator.finalize(f"op-{i}")

    assert len(aggregator._retired) == 3
    assert aggregator.register_response("op-9", "A", "a") is RegisterResult.CLOSED
    assert aggregator.register_response("op-0", "A", "a") is RegisterResult.UNKNOWN_OPERATION
    assert not aggregator.is_known("op-0")

def test_default_retired_limit(aggregator):
    for i in range(RETIRED_LIMIT + 50):
        aggregator.open(f"op-{i}", 1, 0)
        aggregator.finalize(f"op-{i}")

    assert len(aggregator._retired) == RETIRED_LIMIT
    assert aggregator.is_known(f"op-{RETIRED_LIMIT + 49}")
