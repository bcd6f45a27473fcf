"""
Typed exception hierarchy for the recurring-obligation engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the HTTP layer, the scheduler, tests) must be able to tell a bad
frequency from an unknown job without parsing message strings.  Every error:

  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (not just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    RecurringKernelError (base)
    |
    +-- ObligationError
    |   +-- InvalidFrequencyError
    |   +-- ObligationNotFoundError
    |   +-- UnsupportedObligationKindError
    |
    +-- ScheduleError
        +-- InvalidCronExpressionError
        +-- JobNotFoundError
        +-- JobAlreadyRegisteredError
        +-- JobAlreadyRunningError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category    | Code                         | When Raised
------------|------------------------------|---------------------------------------
Obligation  | INVALID_FREQUENCY            | Frequency not daily/weekly/monthly/yearly
            | OBLIGATION_NOT_FOUND         | Obligation ID doesn't exist (or not owned)
            | UNSUPPORTED_OBLIGATION_KIND  | No ledger builder for the kind
------------|------------------------------|---------------------------------------
Schedule    | INVALID_CRON_EXPRESSION      | Cron expression fails to parse
            | JOB_NOT_FOUND                | Job ID not registered with scheduler
            | JOB_ALREADY_REGISTERED       | Duplicate job ID on register
            | JOB_ALREADY_RUNNING          | force_run while the job is in flight

Validation problems with an obligation draft are NOT exceptions: the
validation engine returns them as a list of messages.
"""


class RecurringKernelError(Exception):
    """
    Base exception for all recurring-obligation engine errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "RECURRING_KERNEL_ERROR"


# Obligation-related exceptions


class ObligationError(RecurringKernelError):
    """Base exception for obligation-related errors."""

    code: str = "OBLIGATION_ERROR"


class InvalidFrequencyError(ObligationError):
    """Frequency is not one of the supported recurrences."""

    code: str = "INVALID_FREQUENCY"

    def __init__(self, frequency: object):
        self.frequency = str(frequency)
        super().__init__(
            f"Invalid frequency: {frequency!r} "
            "(expected daily, weekly, monthly, or yearly)"
        )


class ObligationNotFoundError(ObligationError):
    """Obligation with given ID was not found."""

    code: str = "OBLIGATION_NOT_FOUND"

    def __init__(self, obligation_id: str, user_id: str | None = None):
        self.obligation_id = obligation_id
        self.user_id = user_id
        if user_id is None:
            message = f"Recurring obligation not found: {obligation_id}"
        else:
            message = (
                f"Recurring obligation not found: {obligation_id} "
                f"(user {user_id})"
            )
        super().__init__(message)


class UnsupportedObligationKindError(ObligationError):
    """No ledger entry builder is registered for the obligation kind."""

    code: str = "UNSUPPORTED_OBLIGATION_KIND"

    def __init__(self, kind: object):
        self.kind = str(kind)
        super().__init__(f"Unsupported obligation kind: {kind!r}")


# Schedule-related exceptions


class ScheduleError(RecurringKernelError):
    """Base exception for scheduler errors."""

    code: str = "SCHEDULE_ERROR"


class InvalidCronExpressionError(ScheduleError):
    """Cron expression could not be parsed."""

    code: str = "INVALID_CRON_EXPRESSION"

    def __init__(self, expression: str, reason: str):
        self.expression = expression
        self.reason = reason
        super().__init__(f"Invalid cron expression '{expression}': {reason}")


class JobNotFoundError(ScheduleError):
    """No job registered under the given ID."""

    code: str = "JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


class JobAlreadyRegisteredError(ScheduleError):
    """A job with the same ID is already registered."""

    code: str = "JOB_ALREADY_REGISTERED"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} is already registered")


class JobAlreadyRunningError(ScheduleError):
    """A previous invocation of the job is still in flight."""

    code: str = "JOB_ALREADY_RUNNING"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} is already running")
