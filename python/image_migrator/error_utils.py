"""
Error types and message utilities for providing actionable guidance to users.

Every failure the migrator reports is an ActionableError: a primary message,
a category, a list of suggested fixes and a details mapping. Configuration
errors abort the run; image operation errors only abandon the unit they belong to.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCategory(Enum):
    """Categories of errors for better error handling"""
    CONFIGURATION = "configuration"
    AUTHENTICATION = "authentication"
    CONNECTION = "connection"
    RESOURCE = "resource"
    REFERENCE = "reference"
    UNKNOWN = "unknown"


class ActionableError(Exception):
    """Exception with actionable guidance for users"""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN,
                 suggestions: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        """Initialize actionable error

        Args:
            message: Primary error message
            category: Error category for classification
            suggestions: List of suggested fixes
            details: Additional context information
        """
        self.message = message
        self.category = category
        self.suggestions = suggestions or []
        self.details = details or {}
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message with suggestions"""
        lines = [f"❌ {self.message}"]

        if self.suggestions:
            lines.append("\n💡 Suggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        if self.details:
            lines.append("\n📋 Additional details:")
            for key, value in self.details.items():
                lines.append(f"   {key}: {value}")

        return "\n".join(lines)


class MigrationError(ActionableError):
    """Base class for all errors raised by the image migrator"""


class ConfigLoadError(MigrationError):
    """Raised when the migration plan cannot be read or is malformed"""


class AuthEncodingError(MigrationError):
    """Raised when registry credentials cannot be encoded into an auth token"""


class ImageOperationError(MigrationError):
    """Raised when the engine fails a pull, tag or push"""

    step = "operation"


class PullError(ImageOperationError):
    step = "pull"


class TagError(ImageOperationError):
    step = "tag"


class PushError(ImageOperationError):
    step = "push"


_AUTH_INDICATORS = ("401", "403", "unauthorized", "authentication required", "denied", "forbidden")
_NOT_FOUND_INDICATORS = ("404", "not found", "manifest unknown", "name unknown", "no such image")
_CONNECTION_INDICATORS = (
    "connection",
    "timeout",
    "timed out",
    "refused",
    "unreachable",
    "name resolution",
    "no such host",
    "broken pipe",
)
_REFERENCE_INDICATORS = ("invalid reference", "invalid tag", "repository name must", "invalid repository")


def classify_engine_error(error: Exception) -> ErrorCategory:
    """Guess the error category from the engine's error message.

    Args:
        error: Exception raised by the engine or its transport

    Returns:
        The best matching ErrorCategory, UNKNOWN if nothing matches
    """
    error_str = str(error).lower()

    if any(indicator in error_str for indicator in _AUTH_INDICATORS):
        return ErrorCategory.AUTHENTICATION
    if any(indicator in error_str for indicator in _REFERENCE_INDICATORS):
        return ErrorCategory.REFERENCE
    if any(indicator in error_str for indicator in _NOT_FOUND_INDICATORS):
        return ErrorCategory.RESOURCE
    if any(indicator in error_str for indicator in _CONNECTION_INDICATORS):
        return ErrorCategory.CONNECTION
    return ErrorCategory.UNKNOWN


def _engine_suggestions(category: ErrorCategory, image: str, side: str) -> List[str]:
    if category == ErrorCategory.AUTHENTICATION:
        return [
            f"Verify the --{side}-username and --{side}-password values for the registry hosting {image}",
            f"Check the account has {side} permission on the repository",
            "Verify the password or token hasn't expired or been rotated",
        ]
    if category == ErrorCategory.RESOURCE:
        return [
            f"Verify the image reference is correct: {image}",
            "Check the tag or digest still exists in the registry",
        ]
    if category == ErrorCategory.CONNECTION:
        return [
            "Verify the Docker daemon is running and DOCKER_HOST points at it",
            "Check network connectivity from the Docker daemon to the registry",
            "Verify firewall rules and proxy settings allow access to the registry",
        ]
    if category == ErrorCategory.REFERENCE:
        return [
            f"Check the reference is well formed: {image}",
            "Repository paths must be lowercase; tags allow letters, digits, '_', '.' and '-'",
        ]
    return [
        "Re-run with --verbose for engine debug output",
        "Check the Docker daemon logs for details",
    ]


def create_config_load_error(config_path: str, error: Exception) -> ConfigLoadError:
    """Create actionable error for migration plans that cannot be loaded"""
    error_str = str(error).lower()

    suggestions = [
        f"Verify the file exists and is readable: {config_path}",
        "Check the YAML syntax (indentation, quoting, list markers)",
        "The file must contain a 'migrationUnits' list of {sourceImage, destinationImage} entries",
    ]

    if "permission" in error_str:
        suggestions.insert(0, "Check file permissions for the user running the migration")

    return ConfigLoadError(
        message=f"Failed to load migration plan from {config_path}",
        category=ErrorCategory.CONFIGURATION,
        suggestions=suggestions,
        details={
            "config_path": config_path,
            "error_type": type(error).__name__,
            "error_message": str(error),
        },
    )


def create_auth_encoding_error(username: str, error: Exception) -> AuthEncodingError:
    """Create actionable error for credentials that cannot be encoded"""
    return AuthEncodingError(
        message=f"Failed to encode registry credentials for user '{username}'",
        category=ErrorCategory.AUTHENTICATION,
        suggestions=[
            "Check the username and password contain valid UTF-8 text",
            "Avoid passing binary data or lone surrogate characters as credentials",
        ],
        details={
            "username": username,
            "error_type": type(error).__name__,
            "error_message": str(error),
        },
    )


def create_pull_error(image: str, error: Exception) -> PullError:
    """Create actionable error for failed pulls"""
    category = classify_engine_error(error)
    return PullError(
        message=f"Failed to pull image {image}: {error}",
        category=category,
        suggestions=_engine_suggestions(category, image, "pull"),
        details={
            "image": image,
            "error_type": type(error).__name__,
            "error_message": str(error),
        },
    )


def create_tag_error(source: str, destination: str, error: Exception) -> TagError:
    """Create actionable error for failed tags"""
    category = classify_engine_error(error)
    suggestions = _engine_suggestions(category, destination, "push")
    if category in (ErrorCategory.RESOURCE, ErrorCategory.UNKNOWN):
        suggestions.insert(0, f"Verify {source} was pulled into local storage")

    return TagError(
        message=f"Failed to tag {source} as {destination}: {error}",
        category=category,
        suggestions=suggestions,
        details={
            "source": source,
            "destination": destination,
            "error_type": type(error).__name__,
            "error_message": str(error),
        },
    )


def create_push_error(image: str, error: Exception) -> PushError:
    """Create actionable error for failed pushes"""
    category = classify_engine_error(error)
    return PushError(
        message=f"Failed to push image {image}: {error}",
        category=category,
        suggestions=_engine_suggestions(category, image, "push"),
        details={
            "image": image,
            "error_type": type(error).__name__,
            "error_message": str(error),
        },
    )
