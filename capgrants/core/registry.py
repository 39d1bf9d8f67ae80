from __future__ import annotations

import logging
import os
import re
from threading import Lock
from typing import Iterable, Iterator, List, Optional, Pattern, Tuple

log = logging.getLogger("capgrants.registry")

ANY = "any"

KEY_DELIMITER = ":"
OPERATION_DELIMITER = ","
CAPABILITY_DELIMITER = " "

DEFAULT_OPERATIONS: Tuple[str, ...] = ("read", "write", "delete", "destroy")

ENV_OPERATIONS = "CAPGRANTS_OPERATIONS"

_FORBIDDEN = (KEY_DELIMITER, OPERATION_DELIMITER, CAPABILITY_DELIMITER)


def _validate_name(operation: str) -> str:
    if not isinstance(operation, str):
        raise TypeError("Operation name must be a string")

    if not operation:
        raise ValueError("Operation name must be non-empty")

    if any(ch in operation for ch in _FORBIDDEN):
        raise ValueError(f"Operation name `{operation}` must not contain delimiters")

    if operation == ANY:
        raise ValueError(f"`{ANY}` is reserved and cannot be registered")

    return operation


class OperationRegistry:
    """
    Vocabulary of valid operation names.

    One registry is shared by every Capability built against it, so a
    vocabulary change applies to later parsing and validation only. Existing
    capabilities are never re-validated.

    Thread safety
    - Mutation and reads happen under a single lock.
    - Readers get an immutable tuple snapshot; callers should take one
      snapshot per parse or mutation and work against it.
    """

    def __init__(self, operations: Optional[Iterable[str]] = None):
        self._lock = Lock()
        self._operations: Tuple[str, ...] = ()
        self.set(DEFAULT_OPERATIONS if operations is None else operations)

    @staticmethod
    def from_env() -> "OperationRegistry":
        """Create a registry from environment variables.

        - CAPGRANTS_OPERATIONS: comma separated names (default read,write,delete,destroy)
        """

        raw = os.environ.get(ENV_OPERATIONS, "").strip()
        if not raw:
            return OperationRegistry()

        names = [part.strip() for part in raw.split(OPERATION_DELIMITER)]
        return OperationRegistry(name for name in names if name)

    def set(self, operations: Iterable[str]) -> None:
        """Replace the whole vocabulary."""
        if isinstance(operations, str):
            raise TypeError("operations must be an iterable of names, not a string")

        names: List[str] = []
        for op in operations:
            _validate_name(op)
            if op in names:
                raise ValueError(f"Duplicate operation name: {op}")
            names.append(op)

        with self._lock:
            self._operations = tuple(names)

        log.debug("operation_registry_set", extra={"operations": list(names)})

    def add(self, operation: str) -> None:
        """Append an operation. No-op when already present."""
        _validate_name(operation)

        with self._lock:
            if operation in self._operations:
                return
            self._operations = self._operations + (operation,)

        log.debug("operation_registry_add", extra={"operation": operation})

    def remove(self, operation: str) -> None:
        with self._lock:
            self._operations = tuple(op for op in self._operations if op != operation)

        log.debug("operation_registry_remove", extra={"operation": operation})

    def operations(self) -> Tuple[str, ...]:
        """Ordered snapshot of the current vocabulary."""
        with self._lock:
            return self._operations

    def is_valid(self, operation: str) -> bool:
        return operation in self.operations()

    def has_all(self, candidate: Iterable[str]) -> bool:
        """True if candidate covers every registered operation."""
        present = set(candidate)
        return all(op in present for op in self.operations())

    def has_invalid(self, candidate: Iterable[str]) -> bool:
        """True if candidate holds any name outside the vocabulary."""
        return bool(self.invalid(candidate))

    def invalid(self, candidate: Iterable[str]) -> List[str]:
        """Names from candidate that are not registered, in input order."""
        known = self.operations()
        return [op for op in candidate if op not in known]

    def pattern(self, operations: Optional[Tuple[str, ...]] = None) -> Pattern[str]:
        """
        Compile the compact-syntax grammar for the current vocabulary.

        key[:op[,op...]] where key excludes all delimiters and each op is
        matched exactly against the vocabulary. A bare `any` suffix is
        accepted as well. Pass a snapshot from operations() to build the
        grammar for exactly that vocabulary.
        """
        names = self.operations() if operations is None else operations
        if names:
            op = "(?:" + "|".join(re.escape(name) for name in names) + ")"
        else:
            op = "(?!)"

        forbidden = re.escape("".join(_FORBIDDEN))
        return re.compile(
            rf"(?P<key>[^{forbidden}]+)"
            rf"(?:{re.escape(KEY_DELIMITER)}"
            rf"(?P<operators>{re.escape(ANY)}|{op}(?:{re.escape(OPERATION_DELIMITER)}{op})*))?"
        )

    def __contains__(self, operation: object) -> bool:
        return operation in self.operations()

    def __iter__(self) -> Iterator[str]:
        return iter(self.operations())

    def __len__(self) -> int:
        return len(self.operations())

    def __repr__(self) -> str:
        return f"OperationRegistry({list(self.operations())!r})"
