"""Capability grants for resource keys.

A capability pairs a resource key (``posts``) with the operations granted on
it (``read``, ``write``). Capabilities are written compactly as
``posts:read,write`` and grouped in a space-delimited collection::

    caps = CapabilityCollection("posts:read,write comments")
    caps.is_allowed("comments", "delete")  # True, bare key allows any

Operation names are validated against an OperationRegistry. Pass the same
registry to every object that should share a vocabulary.
"""

from .core.capability import Capability
from .core.collection import CapabilityCollection
from .core.exceptions import (
    AnyAlreadyAllowed,
    CapabilityError,
    InvalidOperation,
    InvalidSyntax,
    MalformedPayload,
    MissingArguments,
)
from .core.registry import ANY, DEFAULT_OPERATIONS, OperationRegistry

__all__ = [
    "ANY",
    "DEFAULT_OPERATIONS",
    "OperationRegistry",
    "Capability",
    "CapabilityCollection",
    "CapabilityError",
    "InvalidSyntax",
    "InvalidOperation",
    "AnyAlreadyAllowed",
    "MalformedPayload",
    "MissingArguments",
]
