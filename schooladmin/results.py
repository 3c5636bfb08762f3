# schooladmin/results.py
"""
Uniform result envelope for every repository call.

Call sites check ``result.success`` and then read ``result.data`` or
``result.message``, so nothing below the UI has to raise to report a failure.
"""
from __future__ import annotations

import functools
import logging
import sqlite3
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    data: T
    message: str = ""

    @property
    def success(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    message: str

    @property
    def success(self) -> bool:
        return False

    @property
    def data(self) -> None:
        return None


Result = Union[Ok, Err]


def unwrap_or(result: Result, default: Any) -> Any:
    if result.success:
        return result.data
    return default


def action(failure_message: str = "") -> Callable:
    """
    Decorate a repository function so it always returns a Result.

    - plain return values are wrapped in Ok
    - Ok / Err pass through untouched
    - any exception is logged and turned into Err
    - when the first argument is a sqlite3 connection, its open
      transaction is rolled back before the Err is returned
    """
    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args, **kwargs) -> Result:
            try:
                value = fn(*args, **kwargs)
            except Exception as exc:
                logger.exception("%s failed", fn.__name__)
                if args and isinstance(args[0], sqlite3.Connection):
                    args[0].rollback()
                return Err(failure_message or str(exc))
            if isinstance(value, (Ok, Err)):
                return value
            return Ok(value)
        return wrapper
    return decorator
