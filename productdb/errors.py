"""Error taxonomy for record operations.

Every error raised by the CRUD engine is a CrudError subclass carrying an
HTTP status and a message that is safe to show to the caller. The JSON
error handler in create_app() turns them into responses.
"""


class CrudError(Exception):
    status_code = 500
    default_message = "Internal server error."

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailed(CrudError):
    """Missing or malformed input."""

    status_code = 400
    default_message = "Invalid input."


class ReferenceNotFound(CrudError):
    """A name-to-id lookup found no matching row."""

    status_code = 400
    default_message = "Referenced record not found."


class Conflict(CrudError):
    """Uniqueness violation at the storage layer."""

    status_code = 409
    default_message = "A record with this unique name/ID already exists."


class NotFound(CrudError):
    status_code = 404
    default_message = "Record not found."


class EmptyUpdate(CrudError):
    status_code = 400
    default_message = "No valid fields or new files provided for update."


class Internal(CrudError):
    """Storage or file-system fault. The message never carries driver text."""

    status_code = 500
