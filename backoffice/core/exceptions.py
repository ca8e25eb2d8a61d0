"""
Exceptions raised by the service layer.

Blueprints never build error responses for these themselves;
``register_error_handlers`` maps them to 404 / 422 / 409.
"""


class NotFoundError(Exception):
    """No such row, or the row is archived and the caller did not ask for it."""

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        where = f" id={resource_id}" if resource_id is not None else ""
        super().__init__(f"{resource}{where} not found")


class ValidationError(Exception):
    """Well-formed input that breaks a rule (suspended trainer, candidate
    not passed, deleting a core template...). ``details`` maps field
    names to short reasons and is returned to the caller.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Duplicate value, or a record other rows still depend on."""

    def __init__(self, resource: str, field: str, value: str | None = None,
                 message: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(message or f"{resource} with {field}={value!r} already exists")


class AvailabilityConflictError(Exception):
    """Unavailability overlaps the trainer's bookings and was not confirmed.

    Nothing has been written. ``conflicts`` holds the overlapping
    bookings so the client can show them before resubmitting with
    ``confirm``.
    """

    def __init__(self, conflicts: list[dict]) -> None:
        self.conflicts = conflicts
        super().__init__(
            f"Trainer has {len(conflicts)} booking(s) on the selected date(s); "
            "confirmation required"
        )
