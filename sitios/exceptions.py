"""Central application exception hierarchy.

This module defines the base application exception ``AppError`` and the
specialized subclasses used by the publish pipeline and the realtime layer
to represent its failure modes (site lookup, rendering, storage
reconciliation, DNS provisioning, configuration, client input and external
services). Using a centralized hierarchy makes error reporting over the wire
and testing consistent.
"""

from __future__ import annotations

from typing import Any, Mapping


class AppError(Exception):
    """Base exception for all application-level errors.

    Parameters
    ----------
    code : str
        Machine-readable error code (e.g., ``'RENDER_ERROR'``).
    message : str
        Human-readable message describing the error.
    context : Mapping[str, Any] | None, optional
        Optional structured context for logging.
    transient : bool, optional
        Whether the error is temporary and may succeed when re-triggered.

    Attributes
    ----------
    code : str
        Stable machine-readable error code.
    message : str
        Human-readable message.
    context : dict
        Structured, non-sensitive context for logging.
    transient : bool
        True if the error is transient.

    Examples
    --------
    >>> e = AppError('CODE', 'message', context={'k': 'v'}, transient=True)
    >>> e.code
    'CODE'
    """

    def __init__(
        self,
        code: str,
        message: str,
        *,
        context: Mapping[str, Any] | None = None,
        transient: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.context = dict(context or {})
        self.transient = bool(transient)

    def __str__(self) -> str:
        """Return a compact string representation of the error."""
        return f"{self.code}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Return a log-safe dictionary representation of the error."""
        return {
            "error_code": self.code,
            "message": self.message,
            "context": self.context,
            "is_transient": self.transient,
        }


class ConfigError(AppError):
    """Raised for an unknown provider tag, malformed globals or a broken template."""

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__("CONFIG_ERROR", message, context=context, transient=False)


class DataValidationError(AppError):
    """Raised for client input that fails validation."""

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__(
            "DATA_VALIDATION_ERROR", message, context=context, transient=False
        )


class LoadError(AppError):
    """Raised when a site or source cannot be loaded for an identity."""

    def __init__(
        self,
        message: str,
        *,
        context: Mapping[str, Any] | None = None,
        code: str = "LOAD_ERROR",
    ) -> None:
        super().__init__(code, message, context=context, transient=False)


class SiteNotFound(LoadError):
    """Raised when a site does not exist or is not owned by the identity."""

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__(message, context=context, code="SITE_NOT_FOUND")


class RenderError(AppError):
    """Raised when the manifest cannot be generated or the renderer fails.

    Attributes
    ----------
    output : str
        Tail of the combined renderer output captured before the failure.
    """

    def __init__(
        self,
        message: str,
        *,
        output: str = "",
        context: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__("RENDER_ERROR", message, context=context, transient=False)
        self.output = output

    def to_dict(self) -> dict[str, Any]:
        """Return the base representation plus the captured output."""
        data = super().to_dict()
        data["output"] = self.output
        return data


class StorageSyncError(AppError):
    """Raised when bucket provisioning or reconciliation has to abort."""

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__(
            "STORAGE_SYNC_ERROR", message, context=context, transient=True
        )


class DNSError(AppError):
    """Raised for failed DNS record operations."""

    def __init__(
        self,
        message: str,
        *,
        context: Mapping[str, Any] | None = None,
        transient: bool = True,
    ) -> None:
        super().__init__("DNS_ERROR", message, context=context, transient=transient)


class DNSRecordExistsError(DNSError):
    """Raised by DNS backends when the record to create already exists."""

    def __init__(
        self, message: str, *, context: Mapping[str, Any] | None = None
    ) -> None:
        super().__init__(message, context=context, transient=False)


class ExternalServiceError(AppError):
    """Raised for unexpected failures from an external service."""

    def __init__(
        self,
        message: str,
        *,
        context: Mapping[str, Any] | None = None,
        transient: bool = True,
    ) -> None:
        super().__init__(
            "EXTERNAL_SERVICE_ERROR", message, context=context, transient=transient
        )
