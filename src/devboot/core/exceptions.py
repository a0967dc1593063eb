"""devboot exception hierarchy."""

from __future__ import annotations


class DevbootError(Exception):
    """Base exception for all devboot errors."""


class ConfigError(DevbootError):
    """Raised when the configuration is invalid or cannot be read."""


class ToolMissingError(DevbootError):
    """Raised when a required external binary is not on PATH."""


class CredentialMaterialError(DevbootError):
    """Raised when credential material cannot be decoded or written."""


class IdentityError(DevbootError):
    """Raised when the caller identity cannot be established."""


class CertificateError(DevbootError):
    """Raised when certificate generation or chain verification fails."""


class StackError(DevbootError):
    """Raised when the bootstrap stack cannot be validated or deployed."""


class ConnectorError(DevbootError):
    """Base for fatal overlay network connector failures."""


class DaemonStartError(ConnectorError):
    """Raised when the overlay daemon does not become ready in time."""

    def __init__(self, message: str, log_tail: list[str] | None = None) -> None:
        super().__init__(message)
        self.log_tail = log_tail or []


class JoinError(ConnectorError):
    """Raised when the daemon rejects the join with the auth key."""


class ConnectionVerifyError(ConnectorError):
    """Raised when no overlay address is assigned after joining."""
