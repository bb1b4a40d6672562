"""
Typed result channel for every data-access call.

Calls never raise into their callers; they hand back ``Ok(value)`` or
``Err(DataAccessError)``. ``Ok`` is truthy and ``Err`` falsy so a plain
``if store.add(...):`` keeps reading as a success check.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Optional


class ErrorKind:
    NETWORK = 'network'
    AUTH = 'auth'
    VALIDATION = 'validation'
    NOT_FOUND = 'not_found'
    CONFLICT = 'conflict'


@dataclass
class DataAccessError:
    kind: str
    message: str
    status_code: Optional[int] = None
    details: Any = field(default=None, repr=False)

    def __str__(self):
        if self.status_code:
            return f"{self.kind} ({self.status_code}): {self.message}"
        return f"{self.kind}: {self.message}"


@dataclass
class Ok:
    value: Any = None

    ok = True

    def __bool__(self):
        return True


@dataclass
class Err:
    error: DataAccessError

    ok = False

    def __bool__(self):
        return False

    @property
    def kind(self) -> str:
        return self.error.kind


def fail(kind: str, message: str, status_code: Optional[int] = None, details: Any = None) -> Err:
    return Err(DataAccessError(kind, message, status_code, details))


def log_failure(logger: logging.Logger, action: str, result: Err) -> Err:
    """Log a failed call; expected rejections as warnings, the rest as errors"""
    error = result.error
    if error.kind == ErrorKind.NETWORK:
        logger.error(f"{action} failed: {error}")
    else:
        logger.warning(f"{action} failed: {error}")
    return result
