from fastapi import status


class AppException(Exception):
    """Base class for errors that are reported to the client as `{"message": ...}`."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "Internal Server Error"):
        self.message = message
        super().__init__(message)


class ValidationError(AppException):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "Validation failed"):
        super().__init__(message)


class NoFieldsProvidedError(ValidationError):
    def __init__(self, fields: list[str]):
        self.fields = fields
        super().__init__(f"At least one of {fields} needs to be present")


class InvalidIdentifierFormatError(ValidationError):
    def __init__(self, field: str = "user ID"):
        self.field = field
        super().__init__(f"Invalid {field} format")


class NotFoundError(AppException):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str = "Resource", identifier: str = ""):
        self.resource = resource
        self.identifier = str(identifier) if identifier else ""
        message = f"{resource} not found"
        if self.identifier:
            message = f"{resource} '{self.identifier}' not found"
        super().__init__(message)


class ConflictError(AppException):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, fields: list[str], message: str | None = None):
        self.fields = fields
        if message is None:
            # The pluralization bit is hilariously unnecessary, of course
            singular = len(fields) == 1
            field = "field" if singular else "fields"
            contain = "contains" if singular else "contain"
            value = "value" if singular else "values"
            message = f"The following {field} {contain} non-unique {value}: {fields}"
        super().__init__(message)


class AlreadyMemberError(ConflictError):
    def __init__(self):
        super().__init__(["board_id", "user_id"], "User is already a member of this board")


class LastMemberError(ConflictError):
    def __init__(self):
        super().__init__(
            ["user_id"],
            "Cannot remove the last member of a board; delete the board instead",
        )


class InvalidReferenceError(AppException):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, field: str, message: str | None = None):
        self.field = field
        super().__init__(message or f"Invalid {field} - referenced record does not exist")


class BoardNotFoundError(InvalidReferenceError):
    def __init__(self, message: str = "Invalid board ID - board does not exist"):
        super().__init__("board_id", message)


class RateLimitedError(AppException):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, retry_after: int | None = None):
        self.retry_after = retry_after
        super().__init__("Too many requests, please try again later.")
