"""Custom application exceptions.

Three kinds are kept apart because the pipeline reacts to each differently:

* ``ValidationException`` - malformed input; never retried.
* ``BusinessException`` - legal input that breaks a domain rule; logged,
  never retried automatically.
* ``InfrastructureException`` - a store or the event channel failed; the
  triggering message stays unacknowledged so the transport redelivers it.
"""


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error", field: str | None = None):
        """Initialize with 422 status code."""
        self.field = field
        super().__init__(message, status_code=422)


class UnsupportedCountryError(ValidationException):
    """Country code outside the supported set."""

    def __init__(self, country_iso: str):
        super().__init__(
            f"Country {country_iso} is not supported. Only PE and CL are allowed",
            field="countryISO",
        )


class InvalidInsuredIdError(ValidationException):
    """Insured id is not a numeric identifier of the expected length."""

    def __init__(self, insured_id: str, reason: str = "Must be exactly 5 digits"):
        super().__init__(f"Invalid insured ID: {insured_id}. {reason}", field="insuredId")


class MessageFormatError(ValidationException):
    """A queued message could not be parsed into the expected shape."""

    def __init__(self, message: str = "Malformed message"):
        super().__init__(message, field="message")


class BusinessException(AppException):
    """Legal input that violates a domain rule."""

    def __init__(self, message: str, status_code: int = 409):
        super().__init__(message, status_code=status_code)


class NotFoundException(BusinessException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class ScheduleNotFoundError(NotFoundException):
    """No schedule with the given id exists for the country."""

    def __init__(self, schedule_id: int, country_iso: str):
        self.schedule_id = schedule_id
        self.country_iso = country_iso
        super().__init__(f"Schedule {schedule_id} not found for country {country_iso}")


class AppointmentNotFoundError(NotFoundException):
    """No appointment with the given id exists."""

    def __init__(self, appointment_id: str):
        self.appointment_id = appointment_id
        super().__init__(f"Appointment with ID {appointment_id} not found")


class InvalidStatusTransitionError(BusinessException):
    """The appointment is not in the state the requested transition needs."""

    def __init__(self, appointment_id: str, current: str, required: str):
        self.appointment_id = appointment_id
        self.current = current
        self.required = required
        super().__init__(
            f"Appointment {appointment_id} is not in {required} status. "
            f"Current status: {current}"
        )


class CountryMismatchError(BusinessException):
    """The request's country differs from the appointment's country."""

    def __init__(self, appointment_id: str, expected: str, received: str):
        self.appointment_id = appointment_id
        super().__init__(
            f"Appointment {appointment_id} country {expected} does not match "
            f"request country {received}"
        )


class ScheduleConflictError(BusinessException):
    """The schedule was already reserved by a different appointment."""

    def __init__(self, schedule_id: int, country_iso: str, reserved_by: str | None):
        self.schedule_id = schedule_id
        self.reserved_by = reserved_by
        super().__init__(
            f"Schedule {schedule_id} for country {country_iso} is already reserved"
        )


class AppointmentConflictError(BusinessException):
    """A create-only write found a record that is no longer pending."""

    def __init__(self, appointment_id: str):
        self.appointment_id = appointment_id
        super().__init__(f"Appointment {appointment_id} already exists and is not pending")


class CountryRuleViolationError(BusinessException):
    """A country-specific business rule rejected the appointment."""


class InfrastructureException(AppException):
    """A dependency (store, transport) failed; the operation may be retried."""

    def __init__(self, operation: str, cause: Exception | None = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{self.__class__.__name__} during {operation}{detail}", status_code=503)


class StoreUnavailableError(InfrastructureException):
    """A store call failed or returned something unusable."""


class PublishError(InfrastructureException):
    """Publishing to the event channel failed."""
