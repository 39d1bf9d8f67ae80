from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from .capability import Capability, payload_key
from .exceptions import InvalidOperation, MissingArguments
from .payload import (
    decode_blob,
    dump_payload,
    encode_blob,
    validate_payload,
    validate_payload_json,
)
from .registry import ANY, CAPABILITY_DELIMITER, OperationRegistry

log = logging.getLogger("capgrants.collection")

KeyRef = Union[str, Capability]


def _resolve_key(ref: KeyRef) -> Optional[str]:
    if isinstance(ref, Capability):
        return ref.key
    if ref is None or isinstance(ref, str):
        return ref
    raise TypeError("Expected a capability key or a Capability instance")


class CapabilityCollection:
    """
    Ordered collection of Capability entries.

    Entries keep insertion order. add() does not de-duplicate keys; lookups
    return the first entry with a matching key and remove() drops all of
    them. Exporting to a mapping keeps the first entry per key.

    Entries are owned by the collection: get() returns the live object.
    """

    def __init__(
        self,
        capabilities: Optional[str] = None,
        default_operations: Optional[Iterable[str]] = None,
        *,
        registry: Optional[OperationRegistry] = None,
    ):
        self._registry = registry if registry is not None else OperationRegistry()
        self._caps: List[Capability] = []

        if capabilities:
            self.import_string(capabilities, default_operations)

    @property
    def registry(self) -> OperationRegistry:
        return self._registry

    def import_string(self, capabilities: str, default_operations: Optional[Iterable[str]] = None) -> "CapabilityCollection":
        """Replace all entries from the space-delimited compact form."""
        defaults = list(default_operations) if default_operations else None
        parts = [part for part in capabilities.split(CAPABILITY_DELIMITER) if part]
        self._caps = [
            Capability.parse(part, defaults, registry=self._registry) for part in parts
        ]
        return self

    def extend_from_dict(self, data: Any) -> "CapabilityCollection":
        """Append entries from a {key: [operations]} mapping."""
        entries = [
            Capability.of(payload_key(key), operations, registry=self._registry)
            for key, operations in validate_payload(data).items()
        ]
        self._caps.extend(entries)
        return self

    # access

    def get(self, key: KeyRef) -> Optional[Capability]:
        key = _resolve_key(key)
        for cap in self._caps:
            if cap.is_key(key):
                return cap
        return None

    def get_all(self) -> List[Capability]:
        return list(self._caps)

    def get_keys(self) -> List[Optional[str]]:
        return [cap.key for cap in self._caps]

    def __iter__(self) -> Iterator[Capability]:
        return iter(self._caps)

    def __len__(self) -> int:
        return len(self._caps)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, (str, Capability)):
            return False
        return self.get(key) is not None

    # mutation

    def add(self, capability: Union[Capability, str]) -> "CapabilityCollection":
        if not isinstance(capability, Capability):
            capability = Capability.parse(capability, registry=self._registry)
        self._caps.append(capability)
        return self

    def merge(self, other: "CapabilityCollection") -> "CapabilityCollection":
        """
        Union other into this collection.

        Known keys merge operations; unknown keys are appended by reference.
        Every foreign operation is checked against the matching local entry
        first, so an InvalidOperation leaves this collection unchanged.
        """
        if other is self:
            return self

        for cap in other:
            local = self.get(cap.key)
            if local is None:
                continue
            snapshot = local.registry.operations()
            for op in cap.get():
                if op != ANY and op not in snapshot:
                    raise InvalidOperation(op, snapshot)

        for cap in list(other):
            local = self.get(cap.key)
            if local is None:
                self._caps.append(cap)
                continue
            local.merge(cap.get())
        return self

    def remove(self, key: KeyRef) -> "CapabilityCollection":
        key = _resolve_key(key)
        self._caps = [cap for cap in self._caps if not cap.is_key(key)]
        return self

    def remove_many(self, other: "CapabilityCollection") -> "CapabilityCollection":
        """
        Subtract other from this collection.

        For each entry in other
        - missing here: ignored
        - allows any: the local entry is dropped
        - otherwise its operations are removed from the local entry, which
          is dropped once it has none left
        """
        for cap in list(other):
            local = self.get(cap.key)
            if local is None:
                continue

            if cap.is_any_allowed():
                self.remove(cap.key)
                continue

            local.remove(cap.get())
            if not local.get():
                self.remove(cap.key)
        return self

    def remove_all(self) -> "CapabilityCollection":
        self._caps = []
        return self

    # queries

    def is_allowed(self, key: str, operation: str) -> bool:
        cap = self.get(key)
        if cap is None:
            return False
        return cap.has(operation)

    def is_any_allowed(self, key: str, *operations: Any) -> bool:
        if not operations:
            raise MissingArguments("is_any_allowed() needs at least one operation to check")

        cap = self.get(key)
        if cap is None:
            return False
        return cap.has_any(*operations)

    def is_all_allowed(self, key: str, *operations: Any) -> bool:
        if not operations:
            raise MissingArguments("is_all_allowed() needs at least one operation to check")

        cap = self.get(key)
        if cap is None:
            return False
        return cap.has_all(*operations)

    def is_matching(self, other: "CapabilityCollection") -> bool:
        """
        True if every entry of other is matched here.

        A match needs a local entry with the same key, the same "any" flag,
        and (when not "any") local operations covering the foreign ones.
        Keys only present locally are ignored.
        """
        for cap in other:
            local = self.get(cap.key)
            if local is None:
                return False

            if cap.is_any_allowed() != local.is_any_allowed():
                return False

            if not local.has_all(cap.get()):
                return False
        return True

    def is_higher(self, other: "CapabilityCollection") -> bool:
        """True if other grants anything this collection does not."""
        for cap in other:
            local = self.get(cap.key)
            if local is None:
                return True

            if local.is_any_allowed():
                continue

            if cap.is_any_allowed():
                return True

            if not local.has_all(cap.get()):
                return True
        return False

    def is_lower(self, other: "CapabilityCollection") -> bool:
        return not self.is_higher(other)

    # serialization

    def to_dict(self) -> Dict[str, List[str]]:
        out: Dict[str, List[str]] = {}
        for cap in self._caps:
            if cap.key in out:
                log.warning("capability_duplicate_key_dropped", extra={"capability_key": cap.key})
                continue
            out[cap.key] = cap.get()
        return out

    def to_json(self) -> str:
        return dump_payload(self.to_dict())

    def store(self) -> bytes:
        return encode_blob(self.to_dict())

    @classmethod
    def from_dict(cls, data: Any, *, registry: Optional[OperationRegistry] = None) -> "CapabilityCollection":
        return cls(registry=registry).extend_from_dict(data)

    @classmethod
    def from_json(cls, text: Any, *, registry: Optional[OperationRegistry] = None) -> "CapabilityCollection":
        return cls.from_dict(validate_payload_json(text), registry=registry)

    @classmethod
    def load(cls, blob: bytes, *, registry: Optional[OperationRegistry] = None) -> "CapabilityCollection":
        return cls.from_dict(decode_blob(blob), registry=registry)

    def __str__(self) -> str:
        return CAPABILITY_DELIMITER.join(str(cap) for cap in self._caps if cap.get())

    def __repr__(self) -> str:
        return f"CapabilityCollection({self.to_dict()!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CapabilityCollection):
            return NotImplemented
        return self._caps == other._caps

    __hash__ = None  # mutable
