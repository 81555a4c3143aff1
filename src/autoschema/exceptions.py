"""
Exception classes for autoschema.
"""

from typing import Any, Dict, Optional


class AutoSchemaError(Exception):
    """Base exception for all autoschema errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        result = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            result += f" [{details_str}]"
        if self.cause:
            result += f" (caused by: {self.cause})"
        return result


class ConfigurationError(AutoSchemaError):
    """Raised when a declaration or configuration is structurally invalid."""

    pass


class DriverError(AutoSchemaError):
    """Raised when the database driver fails during introspection or DDL."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        sql: Optional[str] = None,
    ) -> None:
        if sql:
            details = dict(details or {})
            details["sql"] = " ".join(sql.split())
        super().__init__(message, details, cause)
        self.sql = sql


class DatabaseConnectionError(DriverError):
    """Raised when a connection cannot be established or has been lost."""

    pass


class ConstraintViolation(DriverError):
    """Raised when a statement violates a constraint, e.g. a duplicate primary key."""

    pass


class ReconciliationError(AutoSchemaError):
    """Raised when a reconciliation result is checked and did not succeed."""

    def __init__(
        self,
        table_name: str,
        errors: Optional[list] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(
            f"Reconciliation failed for table '{table_name}'",
            {"errors": "; ".join(errors)} if errors else None,
            cause,
        )
        self.table_name = table_name
        self.errors = errors or []
