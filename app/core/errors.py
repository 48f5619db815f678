"""Scheduling error taxonomy.

Every rejected mutation surfaces as one of these kinds with a readable
message and, where it applies, the offending field or the conflicting
appointment id.
"""
from dataclasses import dataclass, field as dc_field


@dataclass
class FieldError:
    field: str
    message: str

    def as_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


class SchedulingError(Exception):
    """Base for business-rule failures raised by the scheduling services."""

    kind = "Internal"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        appointment_id: int | None = None,
        errors: list[FieldError] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.appointment_id = appointment_id
        self.errors = errors or []

    def to_content(self) -> dict:
        content: dict = {"detail": self.message, "error": self.kind}
        if self.field:
            content["field"] = self.field
        if self.appointment_id is not None:
            content["appointmentId"] = self.appointment_id
        if self.errors:
            content["errors"] = [e.as_dict() for e in self.errors]
        return content


class ValidationError(SchedulingError):
    kind = "ValidationError"
    status_code = 422


class NotFound(SchedulingError):
    kind = "NotFound"
    status_code = 404


class SlotConflict(SchedulingError):
    kind = "SlotConflict"
    status_code = 409


class InvalidTransition(SchedulingError):
    kind = "InvalidTransition"
    status_code = 409


class DuplicatePattern(SchedulingError):
    kind = "DuplicatePattern"
    status_code = 409


class Forbidden(SchedulingError):
    kind = "Forbidden"
    status_code = 403


class Internal(SchedulingError):
    kind = "Internal"
    status_code = 500


@dataclass
class ValidationResult:
    """Tagged outcome of a validation function: ok, or a list of field errors."""

    errors: list[FieldError] = dc_field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add(self, field: str, message: str) -> None:
        self.errors.append(FieldError(field, message))

    def raise_for_errors(self) -> None:
        if self.errors:
            first = self.errors[0]
            raise ValidationError(first.message, field=first.field, errors=list(self.errors))
