"""
Error taxonomy for the export pipeline.

Every stage logs the failure and re-raises one of these; the CLI turns any
ExportError into a non-zero exit status.
"""

from __future__ import annotations


class ExportError(Exception):
    """Base class for all export pipeline failures."""
    pass


class ConfigurationError(ExportError):
    """Raised when an attribute or admin-center table is missing or malformed."""
    pass


class CredentialError(ExportError):
    """Raised when no usable credential or token could be obtained."""
    pass


class ModuleLoadError(ExportError):
    """Raised when an external dependency (e.g. the logging descriptor) is unavailable."""
    pass


class RemoteFetchError(ExportError):
    """Raised on authentication or transport failure while listing a resource."""
    pass


class ApiError(RemoteFetchError):
    """Raised when a service API returns a non-recoverable HTTP status."""
    def __init__(self, status_code: int, message: str, url: str):
        self.status_code = status_code
        self.message = message
        self.url = url
        super().__init__(f"API Error {status_code} for {url}: {message}")


class SinkWriteError(ExportError):
    """Raised when the output CSV cannot be created or written."""
    pass


class MissingAttributeError(ExportError):
    """Raised in strict projection mode when a record lacks a requested attribute."""
    def __init__(self, attribute: str):
        self.attribute = attribute
        super().__init__(f"Record has no attribute '{attribute}'")
