# schooladmin/roll_number_policy.py
"""
When to ask for a roll number, and when to put the old one back.

Edit flow (RollNumberSession)
    The stored class, section and roll number are latched as the original
    when the record loads. Records without a stored pair latch on the first
    complete selection instead. Moving away from that pair asks the
    generator for a number in the new section and unlocks the field.
    Moving back re-reads the stored roll number and locks the field.

Creation flow (AdmissionRollNumber)
    Every class/section change asks for a fresh number. Nothing to restore.

Each request carries a token from RequestSequencer. A response is applied
only if its token is still the newest one, so a slow answer for an older
selection never overwrites a newer one.
"""
from __future__ import annotations

import enum
import logging
import threading
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from schooladmin.results import Err, Ok, Result

logger = logging.getLogger(__name__)


class RollState(enum.Enum):
    UNCHANGED = "unchanged"
    CHANGED = "changed"


@dataclass(frozen=True)
class LatchedOriginal:
    class_id: Any
    section_id: Any
    roll_number: str


class RequestSequencer:
    """Monotonic request tokens; only the latest one is live."""

    def __init__(self):
        self._latest = 0
        self._lock = threading.Lock()

    def issue(self) -> int:
        with self._lock:
            self._latest += 1
            return self._latest

    def is_latest(self, token: int) -> bool:
        with self._lock:
            return token == self._latest

    def invalidate(self) -> None:
        self.issue()


def _as_result(value: Any) -> Result:
    if isinstance(value, (Ok, Err)):
        return value
    return Ok(value)


class _RollNumberField:
    def __init__(self, generate: Callable[[Any], Any], executor: Optional[Executor] = None):
        self._generate = generate
        self._executor = executor
        self._sequencer = RequestSequencer()
        self._lock = threading.RLock()
        self._pending_token: Optional[int] = None
        self.class_id = None
        self.section_id = None
        self.roll_number = ""
        self.error = ""

    # -- request plumbing --
    @property
    def pending(self) -> bool:
        return self._pending_token is not None

    @property
    def can_submit(self) -> bool:
        return not self.pending

    def _invalidate(self) -> None:
        self._sequencer.invalidate()
        self._pending_token = None

    def _dispatch(self, fn: Callable, arg: Any, apply: Callable[[Result], None]) -> int:
        token = self._sequencer.issue()
        self._pending_token = token
        if self._executor is None:
            try:
                result = _as_result(fn(arg))
            except Exception as exc:
                logger.exception("Roll number request failed")
                result = Err(str(exc))
            self._resolve(token, result, apply)
        else:
            future = self._executor.submit(fn, arg)
            future.add_done_callback(lambda f: self._resolve_future(token, f, apply))
        return token

    def _resolve_future(self, token: int, future: Future, apply: Callable[[Result], None]) -> None:
        try:
            result = _as_result(future.result())
        except Exception as exc:
            logger.warning("Roll number request failed: %s", exc)
            result = Err(str(exc))
        self._resolve(token, result, apply)

    def _resolve(self, token: int, result: Result, apply: Callable[[Result], None]) -> bool:
        with self._lock:
            if not self._sequencer.is_latest(token):
                logger.debug("Discarding stale roll number response (token %s)", token)
                return False
            self._pending_token = None
            apply(result)
            return True

    def _apply_generated(self, result: Result) -> None:
        value = result.data if result.success else None
        if not value:
            self.error = result.message or "Roll number generator returned nothing"
            logger.warning("No roll number for section %s: %s", self.section_id, self.error)
            self.roll_number = ""
            return
        self.error = ""
        self.roll_number = str(value)

    @staticmethod
    def _normalize(value: Any) -> Any:
        return value if value not in ("", None) else None

    def payload(self) -> Dict[str, Any]:
        return {
            "class_id": self.class_id,
            "section_id": self.section_id,
            "roll_number": self.roll_number,
        }


class AdmissionRollNumber(_RollNumberField):
    """Roll number for a new admission."""

    def select(self, class_id: Any, section_id: Any) -> Optional[int]:
        class_id, section_id = self._normalize(class_id), self._normalize(section_id)
        with self._lock:
            if (class_id, section_id) == (self.class_id, self.section_id):
                return None
            self.class_id, self.section_id = class_id, section_id
            if class_id is None or section_id is None:
                self._invalidate()
                self.roll_number = ""
                return None
            return self._dispatch(self._generate, section_id, self._apply_generated)

    def refresh(self) -> Optional[int]:
        with self._lock:
            if self.section_id is None:
                return None
            return self._dispatch(self._generate, self.section_id, self._apply_generated)


class RollNumberSession(_RollNumberField):
    """Roll number for one open edit of an existing student."""

    def __init__(self, student_pk: Any, generate: Callable[[Any], Any],
                 fetch_details: Callable[[Any], Any], executor: Optional[Executor] = None):
        super().__init__(generate, executor)
        self.student_pk = student_pk
        self._fetch_details = fetch_details
        self.latched: Optional[LatchedOriginal] = None
        self.details: Dict[str, Any] = {}

    @property
    def state(self) -> RollState:
        if self.latched is None:
            return RollState.UNCHANGED
        if (self.class_id, self.section_id) == (self.latched.class_id, self.latched.section_id):
            return RollState.UNCHANGED
        return RollState.CHANGED

    @property
    def editable(self) -> bool:
        return self.state is RollState.CHANGED

    def open(self) -> Result:
        """Load the stored student record; its roll number is shown read-only."""
        try:
            result = _as_result(self._fetch_details(self.student_pk))
        except Exception as exc:
            logger.exception("Could not load student %s", self.student_pk)
            result = Err(str(exc))
        if result.success and result.data:
            self.details = dict(result.data)
            self.roll_number = self.details.get("roll_number") or ""
            class_id = self._normalize(self.details.get("class_id"))
            section_id = self._normalize(self.details.get("section_id"))
            # the stored pair is the original, whatever the pickers show first
            if class_id is not None and section_id is not None:
                with self._lock:
                    self.class_id, self.section_id = class_id, section_id
                    self.latched = LatchedOriginal(class_id, section_id, self.roll_number)
        else:
            self.error = result.message
            logger.warning("Student %s not loaded: %s", self.student_pk, result.message)
        return result

    def select(self, class_id: Any, section_id: Any) -> Optional[int]:
        class_id, section_id = self._normalize(class_id), self._normalize(section_id)
        with self._lock:
            if (class_id, section_id) == (self.class_id, self.section_id):
                return None
            self.class_id, self.section_id = class_id, section_id

            if class_id is None or section_id is None:
                self._invalidate()
                return None

            if self.latched is None:
                self.latched = LatchedOriginal(class_id, section_id, self.roll_number)
                self._invalidate()
                return None

            if self.state is RollState.CHANGED:
                return self._dispatch(self._generate, section_id, self._apply_generated)
            return self._dispatch(self._fetch_details, self.student_pk, self._apply_restored)

    def edit_roll_number(self, value: str) -> None:
        with self._lock:
            if not self.editable:
                raise ValueError("Roll number is read-only while class and section are unchanged")
            self._invalidate()
            self.roll_number = str(value).strip()

    def _apply_restored(self, result: Result) -> None:
        roll = ""
        if result.success and result.data:
            roll = result.data.get("roll_number") or ""
        if not roll and self.latched is not None:
            logger.warning("Stored roll number unavailable (%s), using the one loaded with the form",
                           result.message or "empty")
            roll = self.latched.roll_number
        self.error = ""
        self.roll_number = roll
