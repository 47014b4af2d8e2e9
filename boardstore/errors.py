"""
Error types for the board store.

This module defines all exception types raised by the stores:
- BoardStoreError: Base exception
- NotFoundError: Board, member, user or roster entry absent
- NotAllFoundError: Batch lookup returned fewer entities than requested
- CodecError: Stored JSON or timestamp could not be decoded
- StoreOperationError: Underlying statement failed

Invariants:
    - All errors inherit from BoardStoreError
    - NotFoundError is expected control flow and is never logged as a failure
    - StoreOperationError always carries the operation name and entity id
"""

from __future__ import annotations

from typing import Any


class BoardStoreError(Exception):
    """Base exception for all board store errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "BOARD_STORE_ERROR"
        self.details = details or {}


class NotFoundError(BoardStoreError):
    """Entity not found.

    Raised when:
    - Board doesn't exist
    - Member row doesn't exist and no synthetic membership applies
    - User, channel member or team member doesn't exist
    """

    def __init__(self, entity: str, entity_id: str = "") -> None:
        message = f"{entity} not found"
        if entity_id:
            message += f": {entity_id}"
        super().__init__(
            message,
            code="NOT_FOUND",
            details={"entity": entity, "entity_id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class NotAllFoundError(NotFoundError):
    """Some of the requested entities were not found.

    The entities that were found are kept in ``found`` so the caller can
    reconcile the partial result.
    """

    def __init__(self, entity: str, requested: list[str], found: list[Any]) -> None:
        super().__init__(entity, ",".join(requested))
        self.code = "NOT_ALL_FOUND"
        self.message = f"not all {entity} found: {len(found)} of {len(requested)}"
        self.args = (self.message,)
        self.details["found"] = len(found)
        self.requested = requested
        self.found = found


class CodecError(BoardStoreError):
    """A stored value could not be decoded or encoded.

    Raised when:
    - properties / card_properties hold malformed JSON
    - a history insert_at timestamp has an unknown format
    """

    def __init__(
        self,
        message: str,
        entity_id: str | None = None,
        field_name: str | None = None,
    ) -> None:
        super().__init__(
            message,
            code="CODEC_ERROR",
            details={"entity_id": entity_id, "field": field_name},
        )
        self.entity_id = entity_id
        self.field_name = field_name


class StoreOperationError(BoardStoreError):
    """A statement failed in the underlying database."""

    def __init__(
        self,
        operation: str,
        entity_id: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        message = f"{operation} failed"
        if entity_id:
            message += f" for {entity_id}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(
            message,
            code="STORE_OPERATION_ERROR",
            details={"operation": operation, "entity_id": entity_id},
        )
        self.operation = operation
        self.entity_id = entity_id
        self.cause = cause
