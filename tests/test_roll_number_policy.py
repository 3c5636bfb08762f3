# tests/test_roll_number_policy.py
from concurrent.futures import Future

import pytest

from schooladmin.results import Err, Ok
from schooladmin.roll_number_policy import (
    AdmissionRollNumber,
    LatchedOriginal,
    RequestSequencer,
    RollNumberSession,
    RollState,
)


class FakeBackend:
    """Stands in for the roll-number generator and the student record."""

    def __init__(self, stored_roll="A001", stored_pair=("A", "X")):
        self.stored_roll = stored_roll
        self.stored_pair = stored_pair
        self.generated = []
        self.fetched = 0
        self.fail_generate = False
        self.fail_fetch = False

    def generate(self, section_id):
        self.generated.append(section_id)
        if self.fail_generate:
            return Err("Failed to generate roll number")
        return Ok(f"{section_id}-{len(self.generated):03d}")

    def fetch(self, student_pk):
        self.fetched += 1
        if self.fail_fetch:
            return Err("Student not found")
        class_id, section_id = self.stored_pair
        return Ok({"id": student_pk, "roll_number": self.stored_roll, "class_id": class_id, "section_id": section_id})


class DeferredExecutor:
    """Holds submitted calls until the test resolves them, in any order."""

    def __init__(self):
        self.calls = []

    def submit(self, fn, *args):
        future = Future()
        self.calls.append((future, fn, args))
        return future

    def run(self, index):
        future, fn, args = self.calls[index]
        future.set_result(fn(*args))


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def session(backend):
    s = RollNumberSession(7, backend.generate, backend.fetch)
    s.open()
    s.select("A", "X")
    return s


def test_sequencer_only_latest_token_is_live():
    seq = RequestSequencer()
    first = seq.issue()
    second = seq.issue()
    assert not seq.is_latest(first)
    assert seq.is_latest(second)
    seq.invalidate()
    assert not seq.is_latest(second)


def test_open_shows_stored_roll_read_only(backend):
    s = RollNumberSession(7, backend.generate, backend.fetch)
    result = s.open()
    assert result.success
    assert s.roll_number == "A001"
    assert s.state is RollState.UNCHANGED
    assert not s.editable


def test_open_latches_stored_pair(backend):
    s = RollNumberSession(7, backend.generate, backend.fetch)
    s.open()
    assert s.latched == LatchedOriginal("A", "X", "A001")
    assert (s.class_id, s.section_id) == ("A", "X")

    s.select("A", "X")
    assert backend.generated == []
    assert backend.fetched == 1
    assert s.state is RollState.UNCHANGED


def test_first_pick_other_than_stored_pair_regenerates(backend):
    s = RollNumberSession(7, backend.generate, backend.fetch)
    s.open()
    # pickers fell back to another class/section than the stored one
    s.select("B", "Y")
    assert s.latched == LatchedOriginal("A", "X", "A001")
    assert s.state is RollState.CHANGED
    assert s.editable
    assert s.roll_number == "Y-001"

    s.select("A", "X")
    assert s.roll_number == "A001"
    assert not s.editable


def test_latch_waits_for_both_class_and_section_without_stored_pair():
    backend = FakeBackend(stored_pair=(None, None))
    s = RollNumberSession(7, backend.generate, backend.fetch)
    s.open()
    s.select("A", None)
    assert s.latched is None
    s.select("A", "X")
    assert s.latched == LatchedOriginal("A", "X", "A001")
    assert backend.generated == []
    assert s.state is RollState.UNCHANGED


def test_change_section_regenerates_and_unlocks(session, backend):
    session.select("B", "Y")
    assert backend.generated == ["Y"]
    assert session.state is RollState.CHANGED
    assert session.editable
    assert session.roll_number == "Y-001"


def test_change_back_restores_stored_roll(session, backend):
    session.select("B", "Y")
    session.select("A", "X")
    assert session.state is RollState.UNCHANGED
    assert not session.editable
    assert session.roll_number == "A001"
    assert backend.fetched == 2


def test_restore_after_many_detours(session, backend):
    for pair in [("B", "Y"), ("B", "Z"), ("C", "Q"), ("A", "X"), ("A", "W"), ("A", "X"), ("B", "Y"), ("A", "X")]:
        session.select(*pair)
    assert session.state is RollState.UNCHANGED
    assert session.roll_number == "A001"
    assert session.latched == LatchedOriginal("A", "X", "A001")


def test_latch_is_never_overwritten(session):
    session.select("B", "Y")
    session.select("B", None)
    session.select("C", "Q")
    assert session.latched == LatchedOriginal("A", "X", "A001")


def test_same_selection_is_a_no_op(session, backend):
    session.select("B", "Y")
    session.select("B", "Y")
    assert backend.generated == ["Y"]


def test_generator_failure_leaves_empty_roll(session, backend):
    backend.fail_generate = True
    session.select("B", "Y")
    assert session.roll_number == ""
    assert session.error
    assert session.can_submit


def test_generator_exception_is_absorbed(backend):
    def boom(section_id):
        raise RuntimeError("database is locked")

    s = RollNumberSession(7, boom, backend.fetch)
    s.open()
    s.select("A", "X")
    s.select("B", "Y")
    assert s.roll_number == ""
    assert "locked" in s.error


def test_empty_generated_value_is_treated_as_failure(backend):
    s = RollNumberSession(7, lambda section_id: "", backend.fetch)
    s.open()
    s.select("A", "X")
    s.select("B", "Y")
    assert s.roll_number == ""


def test_restore_falls_back_to_latched_roll(session, backend):
    session.select("B", "Y")
    backend.fail_fetch = True
    session.select("A", "X")
    assert session.roll_number == "A001"


def test_manual_edit_only_when_changed(session):
    with pytest.raises(ValueError):
        session.edit_roll_number("X999")
    session.select("B", "Y")
    session.edit_roll_number(" 2025042 ")
    assert session.roll_number == "2025042"
    assert session.payload() == {"class_id": "B", "section_id": "Y", "roll_number": "2025042"}


def test_stale_generate_response_is_discarded(backend):
    executor = DeferredExecutor()
    s = RollNumberSession(7, backend.generate, backend.fetch, executor=executor)
    s.open()
    s.select("A", "X")
    s.select("B", "Y")
    s.select("B", "Z")
    assert s.pending
    assert not s.can_submit

    executor.run(1)
    assert s.roll_number == "Z-001"
    assert not s.pending

    executor.run(0)
    assert s.roll_number == "Z-001"


def test_stale_generate_does_not_override_restore(backend):
    executor = DeferredExecutor()
    s = RollNumberSession(7, backend.generate, backend.fetch, executor=executor)
    s.open()
    s.select("A", "X")
    s.select("B", "Y")
    s.select("A", "X")

    executor.run(1)
    executor.run(0)
    assert s.roll_number == "A001"
    assert s.state is RollState.UNCHANGED


def test_manual_edit_wins_over_in_flight_response(backend):
    executor = DeferredExecutor()
    s = RollNumberSession(7, backend.generate, backend.fetch, executor=executor)
    s.open()
    s.select("A", "X")
    s.select("B", "Y")
    s.edit_roll_number("B777")
    executor.run(0)
    assert s.roll_number == "B777"


def test_admission_requests_fresh_number_on_each_change(backend):
    field = AdmissionRollNumber(backend.generate)
    field.select("A", "X")
    assert field.roll_number == "X-001"

    field.select("B", None)
    assert field.roll_number == ""
    assert backend.generated == ["X"]

    field.select("B", "Y")
    assert field.roll_number == "Y-002"

    field.select("A", "X")
    assert field.roll_number == "X-003"
    assert backend.generated == ["X", "Y", "X"]


def test_admission_refresh_and_failure(backend):
    field = AdmissionRollNumber(backend.generate)
    assert field.refresh() is None
    field.select("A", "X")
    field.refresh()
    assert field.roll_number == "X-002"

    backend.fail_generate = True
    field.refresh()
    assert field.roll_number == ""
    assert field.error == "Failed to generate roll number"
