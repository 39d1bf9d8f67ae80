from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

from .exceptions import AnyAlreadyAllowed, InvalidOperation, InvalidSyntax, MalformedPayload
from .payload import (
    decode_blob,
    dump_payload,
    encode_blob,
    validate_payload,
    validate_payload_json,
)
from .registry import ANY, CAPABILITY_DELIMITER, KEY_DELIMITER, OPERATION_DELIMITER, OperationRegistry


def validate_key(key: str) -> str:
    if not isinstance(key, str):
        raise TypeError("Capability key must be a string")

    if not key:
        raise ValueError("Capability key must be non-empty")

    for ch in (KEY_DELIMITER, OPERATION_DELIMITER, CAPABILITY_DELIMITER):
        if ch in key:
            raise ValueError(f"Capability key `{key}` must not contain `{ch}`")

    return key


def payload_key(key: str) -> str:
    """validate_key for structured input; bad keys are a malformed payload."""
    try:
        return validate_key(key)
    except (TypeError, ValueError) as e:
        raise MalformedPayload(f"Invalid capability key in payload: {e}") from e


def _flatten(items: Iterable[Any]) -> List[str]:
    """Flatten nested iterables of names, keeping first-seen order."""
    out: List[str] = []
    for item in items:
        if isinstance(item, str):
            names = [item]
        elif isinstance(item, (list, tuple, set, frozenset)):
            names = _flatten(item)
        else:
            raise TypeError(f"Operation term `{item!r}` should be a string or a list of strings")

        for name in names:
            if name not in out:
                out.append(name)
    return out


class Capability:
    """
    A resource key and the operations granted on it.

    Operations are an ordered, duplicate-free list of vocabulary names, or
    exactly ["any"]. Whenever the list covers the whole vocabulary of the
    registry it collapses to ["any"], so both forms answer every query the
    same way.

    Construction
    - Capability() is keyless with no operations (or default_operations).
    - Capability("posts") allows any operation on posts.
    - Capability("posts:read,write") grants read and write.
    - Capability.of("posts", ["read"]) builds from a key and operation list.
    """

    def __init__(
        self,
        capability: Optional[str] = None,
        default_operations: Optional[Iterable[str]] = None,
        *,
        registry: Optional[OperationRegistry] = None,
    ):
        self._registry = registry if registry is not None else OperationRegistry()
        self._key: Optional[str] = None
        defaults = list(default_operations) if default_operations else []
        self._operations: List[str] = list(defaults)

        if capability:
            self.import_string(capability, defaults)

    @classmethod
    def parse(
        cls,
        capability: str,
        default_operations: Optional[Iterable[str]] = None,
        *,
        registry: Optional[OperationRegistry] = None,
    ) -> "Capability":
        if not isinstance(capability, str) or not capability:
            snapshot = (registry or OperationRegistry()).operations()
            raise InvalidSyntax(str(capability), snapshot)
        return cls(capability, default_operations, registry=registry)

    @classmethod
    def of(
        cls,
        key: str,
        operations: Iterable[str],
        *,
        registry: Optional[OperationRegistry] = None,
    ) -> "Capability":
        """Build from a key and operation names; ["any"] allows any."""
        cap = cls(registry=registry)
        cap.set_key(key)

        names = _flatten([operations] if isinstance(operations, str) else list(operations))
        if ANY in names:
            if len(names) > 1:
                raise InvalidOperation(ANY, cap._registry.operations(), "cannot be combined with other operations")
            cap.allow_any()
        else:
            cap.merge(names)
        return cap

    @property
    def registry(self) -> OperationRegistry:
        return self._registry

    def import_string(self, capability: str, default_operations: Optional[Iterable[str]] = None) -> "Capability":
        """
        Replace key and operations from the compact `key[:op,op]` form.

        Raises
        - InvalidSyntax: no key, or a token outside the current vocabulary.
        """
        snapshot = self._registry.operations()
        pattern = self._registry.pattern(snapshot)

        match = pattern.fullmatch(capability) if isinstance(capability, str) else None
        if match is None or not match.group("key"):
            raise InvalidSyntax(str(capability), snapshot)

        self._key = match.group("key")
        operators = match.group("operators")

        if not operators:
            defaults = list(default_operations) if default_operations else []
            # Defaults are trusted and adopted verbatim.
            self._operations = defaults if defaults else [ANY]
            return self

        names = list(dict.fromkeys(operators.split(OPERATION_DELIMITER)))
        if names == [ANY] or all(op in names for op in snapshot):
            self._operations = [ANY]
        else:
            self._operations = names
        return self

    # key

    @property
    def key(self) -> Optional[str]:
        return self._key

    def set_key(self, key: str) -> "Capability":
        self._key = validate_key(key)
        return self

    def get_key(self) -> Optional[str]:
        return self._key

    def is_key(self, expected: str) -> bool:
        return self._key == expected

    # operations

    @property
    def operations(self) -> List[str]:
        return list(self._operations)

    def get(self) -> List[str]:
        return list(self._operations)

    def _validated(self, operations: Iterable[Any], *, allow_any: bool = False) -> Tuple[List[str], Tuple[str, ...]]:
        snapshot = self._registry.operations()
        names = _flatten(operations)
        for op in names:
            if op == ANY and allow_any:
                continue
            if op not in snapshot:
                raise InvalidOperation(op, snapshot)
        return names, snapshot

    def _collapse(self, snapshot: Tuple[str, ...]) -> None:
        if ANY in self._operations:
            self._operations = [ANY]
        elif snapshot and all(op in self._operations for op in snapshot):
            self._operations = [ANY]

    def _union(self, names: List[str]) -> None:
        for op in names:
            if op not in self._operations:
                self._operations.append(op)

    def add(self, *operations: Any) -> "Capability":
        """
        Add operations.

        Raises
        - InvalidOperation: a name is outside the vocabulary.
        - AnyAlreadyAllowed: this capability already allows any.
        """
        names, snapshot = self._validated(operations)

        if self.is_any_allowed():
            raise AnyAlreadyAllowed(
                f"Capability `{self._key}` already allows any operation; "
                "call disallow_any() or insert() first."
            )

        self._union(names)
        self._collapse(snapshot)
        return self

    def insert(self, *operations: Any) -> "Capability":
        """Like add(), but replaces "any" with the requested operations."""
        names, snapshot = self._validated(operations)

        if self.is_any_allowed():
            self._operations = []

        self._union(names)
        self._collapse(snapshot)
        return self

    def merge(self, operations: Iterable[Any]) -> "Capability":
        """Unconditional union. Merging "any" allows any."""
        items = [operations] if isinstance(operations, str) else list(operations)
        names, snapshot = self._validated(items, allow_any=True)

        if ANY in names or self.is_any_allowed():
            self._operations = [ANY]
            return self

        self._union(names)
        self._collapse(snapshot)
        return self

    def remove(self, *operations: Any) -> "Capability":
        """
        Remove operations.

        On an "any" capability the result is the vocabulary minus the
        requested names. Removing "any" itself clears every operation.
        """
        names, snapshot = self._validated(operations, allow_any=True)

        if ANY in names:
            self._operations = []
            return self

        current = list(snapshot) if self.is_any_allowed() else self._operations
        self._operations = [op for op in current if op not in names]
        self._collapse(snapshot)
        return self

    def allow_any(self) -> "Capability":
        self._operations = [ANY]
        return self

    def disallow_any(self) -> "Capability":
        self._operations = []
        return self

    def is_any_allowed(self) -> bool:
        return ANY in self._operations

    def has(self, expected: str) -> bool:
        if self.is_any_allowed():
            return True
        return expected in self._operations

    def has_any(self, *expected: Any) -> bool:
        if self.is_any_allowed():
            return True
        return any(op in self._operations for op in _flatten(expected))

    def has_all(self, *expected: Any) -> bool:
        if self.is_any_allowed():
            return True
        return all(op in self._operations for op in _flatten(expected))

    # serialization

    def to_dict(self) -> Dict[str, List[str]]:
        return {self._key: list(self._operations)}

    def to_json(self) -> str:
        return dump_payload(self.to_dict())

    def store(self) -> bytes:
        return encode_blob(self.to_dict())

    @classmethod
    def from_dict(cls, data: Any, *, registry: Optional[OperationRegistry] = None) -> "Capability":
        payload = validate_payload(data)
        if len(payload) != 1:
            raise MalformedPayload(f"Capability payload must hold exactly one key, got {len(payload)}")

        key, operations = next(iter(payload.items()))
        return cls.of(payload_key(key), operations, registry=registry)

    @classmethod
    def from_json(cls, text: Any, *, registry: Optional[OperationRegistry] = None) -> "Capability":
        return cls.from_dict(validate_payload_json(text), registry=registry)

    @classmethod
    def load(cls, blob: bytes, *, registry: Optional[OperationRegistry] = None) -> "Capability":
        return cls.from_dict(decode_blob(blob), registry=registry)

    def __str__(self) -> str:
        return f"{self._key or ''}{KEY_DELIMITER}{OPERATION_DELIMITER.join(self._operations)}"

    def __repr__(self) -> str:
        return f"Capability({self._key!r}, {self._operations!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Capability):
            return NotImplemented
        return self._key == other._key and set(self._operations) == set(other._operations)

    __hash__ = None  # mutable
