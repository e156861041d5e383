"""
Custom exceptions for toolfetch.

This module defines domain-specific exceptions that provide better error
categorization and more informative error messages for users and developers.
"""


class ToolfetchError(Exception):
    """
    Base exception for all toolfetch errors.

    All custom exceptions in toolfetch should inherit from this class
    to allow for easy catching of all application-specific errors.
    """

    def __init__(self, message: str, details: str | None = None) -> None:
        """
        Initialize the exception.

        Args:
            message: The primary error message.
            details: Optional additional context about the error.
        """
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(ToolfetchError):
    """
    Exception raised when configuration is invalid or missing.

    This includes:
    - Invalid configuration values
    - Configuration file parsing errors
    - Malformed tool manifest entries
    """

    pass


class ConfigFileError(ConfigurationError):
    """Exception raised when configuration file cannot be read."""

    pass


class ConfigValidationError(ConfigurationError):
    """Exception raised when configuration validation fails."""

    pass


class UnknownToolError(ConfigurationError):
    """Exception raised when a tool name is not part of the registry."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


# =============================================================================
# Download Errors
# =============================================================================


class DownloadError(ToolfetchError):
    """
    Base exception for download transport errors.

    Attributes:
        url: The URL that was being downloaded when the error occurred.
        retry_count: Number of retry attempts made before failure.
        is_retryable: Whether the error could be retried.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        retry_count: int = 0,
        is_retryable: bool = False,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.url = url
        self.retry_count = retry_count
        self.is_retryable = is_retryable


class NetworkError(DownloadError):
    """
    Exception raised for network-related download failures.

    This includes connection timeouts, DNS resolution failures and
    connection resets.
    """

    pass


class HTTPError(DownloadError):
    """
    Exception raised when the server answers with a non-success status.

    Attributes:
        status_code: The HTTP status code returned by the server.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        url: str | None = None,
        retry_count: int = 0,
        is_retryable: bool = False,
        details: str | None = None,
    ) -> None:
        super().__init__(message, url, retry_count, is_retryable, details)
        self.status_code = status_code


class RateLimitError(HTTPError):
    """
    Exception raised when GitHub API rate limit is exceeded.

    Attributes:
        reset_time: When the rate limit will reset (Unix timestamp).
        remaining: Number of requests remaining.
    """

    def __init__(
        self,
        message: str = "GitHub API rate limit exceeded",
        reset_time: int | None = None,
        remaining: int = 0,
        url: str | None = None,
    ) -> None:
        super().__init__(
            message,
            status_code=403,
            url=url,
            is_retryable=True,
            details=f"Resets at: {reset_time}, Remaining: {remaining}",
        )
        self.reset_time = reset_time
        self.remaining = remaining


# =============================================================================
# File System Errors
# =============================================================================


class FileSystemError(ToolfetchError):
    """
    Exception raised for file system-related errors.

    Attributes:
        path: The file path that caused the error.
    """

    def __init__(
        self,
        message: str,
        path: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.path = path


class PathConflictError(FileSystemError):
    """Exception raised when a plain file occupies a path that must become a directory."""

    pass


# =============================================================================
# Archive Errors
# =============================================================================


class ArchiveError(ToolfetchError):
    """
    Exception raised for archive-related errors.

    Attributes:
        archive_path: Path to the problematic archive.
    """

    def __init__(
        self,
        message: str,
        archive_path: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.archive_path = archive_path


class ExtractionError(ArchiveError):
    """Exception raised when archive extraction fails. The cause is chained."""

    pass


class UnsupportedFormatError(ExtractionError):
    """Exception raised when the archive extension is not recognized."""

    pass


# =============================================================================
# API Errors
# =============================================================================


class APIError(ToolfetchError):
    """
    Exception raised for GitHub API errors.

    Attributes:
        endpoint: The API endpoint that was accessed.
        status_code: The HTTP status code returned.
    """

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.endpoint = endpoint
        self.status_code = status_code


class AuthenticationError(APIError):
    """Exception raised when API authentication fails."""

    pass


class ResourceNotFoundError(APIError):
    """Exception raised when an API resource is not found."""

    pass


class ReleaseNotFoundError(ResourceNotFoundError):
    """No release with the requested tag exists."""

    pass


class AssetNotFoundError(ResourceNotFoundError):
    """The release has no asset with the requested name."""

    pass


class ArtifactNotFoundError(ResourceNotFoundError):
    """The workflow run has no artifact with the requested name."""

    pass


class RefNotFoundError(ResourceNotFoundError):
    """The git ref cannot be resolved to a commit."""

    pass


class WorkflowRunNotFoundError(ResourceNotFoundError):
    """The workflow has no run matching the configured filters."""

    pass
