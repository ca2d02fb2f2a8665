from __future__ import annotations


class LedgerError(ValueError):
    """Base for every caller-visible ledger failure."""

    status_code = 400


class ValidationError(LedgerError):
    status_code = 400


class NotFound(LedgerError):
    status_code = 404


class Conflict(LedgerError):
    status_code = 409


class InsufficientInventory(LedgerError):
    status_code = 409

    def __init__(self, message: str, *, supply_type_id: int | None = None, requested: int = 0, available: int = 0):
        super().__init__(message)
        self.supply_type_id = supply_type_id
        self.requested = requested
        self.available = available


class AlreadyAllocated(LedgerError):
    status_code = 409


class InvalidRelease(LedgerError):
    status_code = 409
