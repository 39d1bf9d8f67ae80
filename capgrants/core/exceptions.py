from __future__ import annotations

from typing import Iterable, Optional


def _listing(operations: Iterable[str]) -> str:
    return "`, `".join(operations)


class CapabilityError(Exception):
    """
    Base exception for all capability-related failures.
    """

    pass


class InvalidSyntax(CapabilityError, ValueError):
    """
    Raised when a compact capability string cannot be parsed.
    """

    def __init__(self, raw: str, operations: Iterable[str]):
        self.raw = raw
        self.operations = tuple(operations)
        super().__init__(
            f"Invalid syntax found `{raw}`. Make sure it uses any of available "
            f"operations: `{_listing(self.operations)}`."
        )


class InvalidOperation(CapabilityError, ValueError):
    """
    Raised when a mutation receives an operation outside the vocabulary.
    """

    def __init__(self, operation: object, operations: Iterable[str], reason: Optional[str] = None):
        self.operation = operation
        self.operations = tuple(operations)
        detail = reason or "is not a valid operation"
        super().__init__(
            f"Operation `{operation}` {detail}. Available operations: "
            f"`{_listing(self.operations)}`."
        )


class AnyAlreadyAllowed(CapabilityError):
    """
    Raised when adding operations to a capability that already allows any.
    Call disallow_any() or use insert() first.
    """

    pass


class MalformedPayload(CapabilityError, ValueError):
    """
    Raised when structured, JSON or stored input is not a mapping of
    key to a list of operation names.
    """

    pass


class MissingArguments(CapabilityError, TypeError):
    """
    Raised when a query needs at least one operation name and got none.
    """

    pass
