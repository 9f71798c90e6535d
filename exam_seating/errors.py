from typing import Optional


class AllocationError(Exception):
    code = "ALLOCATION_ERROR"
    status_code = 422

    def __init__(self, message: str, details: Optional[dict] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if code is not None:
            self.code = code

    def to_detail(self) -> dict:
        return {"code": self.code, "message": self.message, **self.details}


class NoActiveHalls(AllocationError):
    code = "NO_ACTIVE_HALLS"


class EmptyRoster(AllocationError):
    code = "EMPTY_ROSTER"


class CapacityExceeded(AllocationError):
    code = "CAPACITY_EXCEEDED"


class UnresolvedHardConflicts(AllocationError):
    code = "UNRESOLVED_HARD_CONFLICTS"


class OutOfBounds(AllocationError):
    code = "OUT_OF_BOUNDS"


class SeatOccupied(AllocationError):
    code = "SEAT_OCCUPIED"
    status_code = 409


class RunStateError(AllocationError):
    code = "RUN_NOT_PENDING"
    status_code = 409


class NotFound(AllocationError):
    code = "NOT_FOUND"
    status_code = 404
