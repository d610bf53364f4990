"""Application-specific exceptions for consistent error handling."""

from typing import Any

from fastapi import HTTPException, status


class AppError(HTTPException):
    """Application error with standardized error code."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | list[Any] | None = None,
    ):
        """Initialize application error."""
        super().__init__(
            status_code=status_code,
            detail={
                "code": code,
                "message": message,
                "details": details,
            },
        )
        self.code = code
        self.message = message
        self.details = details


class AccessDeniedError(AppError):
    """Authenticated actor is not allowed to use the watcher's admin surface."""

    def __init__(self, required_roles: list[str]):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            code="ACCESS_DENIED",
            message="You do not have permission to access this page.",
            details={"required_roles": required_roles},
        )


class ReportUnavailableError(AppError):
    """Report or export could not be read from storage."""

    def __init__(self):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            code="PERF_REPORT_UNAVAILABLE",
            message="Performance data could not be retrieved",
        )
