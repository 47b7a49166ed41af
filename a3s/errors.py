"""Error types raised by a3s backends and configuration.

Backends translate boto3/botocore and subprocess failures into one of these
so the UI can show a clean message and decide whether to offer a retry.

A3sError
├── ConfigurationError
├── UnimplementedCapability
├── TransportError
├── AuthError
└── ParseError
"""

from __future__ import annotations

from typing import Optional


class A3sError(Exception):
    def __init__(self, message: str, *, hint: Optional[str] = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(A3sError):
    """Invalid startup configuration, e.g. an unknown backend mode."""


class UnimplementedCapability(A3sError):
    """The selected backend cannot list this resource category yet."""

    def __init__(self, category: str) -> None:
        super().__init__(f"{category} is not implemented yet")
        self.category = category


class TransportError(A3sError):
    """The endpoint or the aws executable could not be reached."""


class AuthError(A3sError):
    """Credentials are missing, expired or lack permission."""


class ParseError(A3sError):
    """The aws CLI produced output that is not the expected JSON document."""
