"""Typed failures raised by the scheduling core.

Each error knows the HTTP status it maps to so routes can translate it at the
request boundary without inspecting messages.
"""


class SchedulingError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self):
        return self.message


class InvalidInputError(SchedulingError):
    status_code = 400
    code = "INVALID_INPUT"


class NotFoundError(SchedulingError):
    status_code = 404
    code = "NOT_FOUND"


class SlotUnavailableError(SchedulingError):
    status_code = 400
    code = "SLOT_UNAVAILABLE"

    def __init__(self, message: str = 'This time slot is not available or has already been booked.'):
        super().__init__(message)


class SlotAlreadyBookedError(SchedulingError):
    status_code = 409
    code = "SLOT_ALREADY_BOOKED"

    def __init__(self, message: str = 'This time slot was just booked by someone else. Please choose another slot.'):
        super().__init__(message)


class SlotConflictError(SchedulingError):
    status_code = 409
    code = "SLOT_CONFLICT"

    def __init__(self, conflicts: list[str], total: int, message: str = 'Some slots conflict with existing availability.'):
        super().__init__(message)
        self.conflicts = conflicts
        self.total = total

    def to_detail(self):
        return {
            'message': self.message,
            'conflicts': self.conflicts,
            'totalConflicts': self.total,
        }
