# src/s3_spa_upload/exceptions.py
"""Custom exceptions for the s3-spa-upload application."""


class S3SpaUploadError(Exception):
    """Base exception for all application-specific errors."""

    pass


class ConfigError(S3SpaUploadError):
    """Raised for configuration-related issues."""

    pass


class FilesystemError(S3SpaUploadError):
    """Raised when a local directory or file cannot be read."""

    pass


class UploadError(S3SpaUploadError):
    """Raised when an object upload fails permanently."""

    pass


class DeleteError(S3SpaUploadError):
    """Raised when an old object cannot be deleted from the bucket."""

    pass


class SyncInterrupted(S3SpaUploadError):
    """Raised when a shutdown signal stops the upload phase early."""

    pass
