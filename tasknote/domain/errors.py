from __future__ import annotations


class TaskNoteError(Exception):
    pass


class ValidationError(TaskNoteError):
    pass


class ApiError(TaskNoteError):
    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class AuthenticationError(ApiError):
    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message, status=401)
