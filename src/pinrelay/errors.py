"""Root of the pinrelay exception hierarchy."""

from __future__ import annotations


class RelayError(Exception):
    """Base exception for every error raised by pinrelay."""


class ConfigError(RelayError):
    """Invalid client configuration."""
