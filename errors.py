from typing import Optional


class ServiceError(ValueError):
    status_code = 400

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field

    def as_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"detail": self.message}
        if self.field:
            payload["field"] = self.field
        return payload


class ValidationError(ServiceError):
    status_code = 400


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    status_code = 409


class InvalidStateError(ConflictError):
    """A mutation was attempted against a record in the wrong lifecycle state."""
