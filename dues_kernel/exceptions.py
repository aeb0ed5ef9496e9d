"""
Typed Exception Hierarchy for the Dues Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from DuesKernelError:

    DuesKernelError (base)
    |
    +-- ValidationError
    |
    +-- AlreadyPaidError
    |
    +-- NotFoundError
    |   +-- SemesterNotFoundError
    |   +-- StudentNotFoundError
    |   +-- HallNotFoundError
    |
    +-- StoreError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                | When Raised
--------------------|------------------------------------------------------
VALIDATION_ERROR    | Malformed or out-of-range input (before any write)
ALREADY_PAID        | Second payment for a settled (student, semester)
NOT_FOUND           | Referenced record does not exist
SEMESTER_NOT_FOUND  | Semester id does not exist
STUDENT_NOT_FOUND   | Student reference does not resolve to a profile
HALL_NOT_FOUND      | Hall id does not exist
STORE_ERROR         | Store unreachable or transaction could not commit

===============================================================================
HANDLING PATTERNS
===============================================================================

1. CATCH SPECIFIC EXCEPTIONS:

    try:
        recorder.record_payment(request)
    except AlreadyPaidError as e:
        notify_operator(f"{e.student_id} already paid (payment {e.payment_id})")
    except NotFoundError as e:
        return {"error": e.code, "entity": e.entity, "key": e.key}

2. STORE ERRORS ARE RETRYABLE BY THE CALLER:

    except StoreError as e:
        log.error(f"{e.operation} failed: {e.code}")
        # The transaction was rolled back; nothing was half-applied.

3. NEVER CONVERT AN ERROR INTO AN EMPTY RESULT:

    A failed report is a StoreError, not a zeroed report.  "No active
    semester" is a None semester, never "everyone has paid".
"""


class DuesKernelError(Exception):
    """
    Base exception for all dues kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "DUES_KERNEL_ERROR"


class ValidationError(DuesKernelError):
    """Input rejected before any write was attempted."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class AlreadyPaidError(DuesKernelError):
    """
    A settled payment already exists for this student and semester.

    Recoverable: surfaced to the operator as a conflict, not a crash.
    """

    code: str = "ALREADY_PAID"

    def __init__(self, student_id: str, semester_id: str, payment_id: str):
        self.student_id = student_id
        self.semester_id = semester_id
        self.payment_id = payment_id
        super().__init__(
            f"Student {student_id} has already paid for semester {semester_id} "
            f"(payment {payment_id})"
        )


# Lookup failures


class NotFoundError(DuesKernelError):
    """Referenced record does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity: str, key: str):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} not found: {key}")


class SemesterNotFoundError(NotFoundError):
    """Semester with given id does not exist."""

    code: str = "SEMESTER_NOT_FOUND"

    def __init__(self, semester_id: str):
        super().__init__("Semester", semester_id)


class StudentNotFoundError(NotFoundError):
    """Student reference does not resolve to a known profile."""

    code: str = "STUDENT_NOT_FOUND"

    def __init__(self, student_ref: str):
        super().__init__("Student", student_ref)


class HallNotFoundError(NotFoundError):
    """Hall with given id does not exist."""

    code: str = "HALL_NOT_FOUND"

    def __init__(self, hall_id: str):
        super().__init__("Hall", hall_id)


# Store failures


class StoreError(DuesKernelError):
    """
    The record store is unreachable or a transaction could not commit.

    The transaction has been rolled back.  Callers may retry the whole
    operation at their discretion.  ``retryable`` marks conflicts (deadlock,
    serialization failure, busy database) that a fresh attempt can clear.
    """

    code: str = "STORE_ERROR"

    def __init__(self, operation: str, detail: str, retryable: bool = False):
        self.operation = operation
        self.detail = detail
        self.retryable = retryable
        super().__init__(f"Store failure during {operation}: {detail}")
