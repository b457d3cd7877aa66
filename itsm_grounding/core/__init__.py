"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from itsm_grounding.core.exceptions import (
    ApplicationException,
    RepositoryException,
    StorageQuotaExceeded,
    ValidationException,
    ResourceNotFoundException,
    ConfigurationException,
    ExternalServiceException,
    RemoteServiceException,
)

__all__ = [
    "ApplicationException",
    "RepositoryException",
    "StorageQuotaExceeded",
    "ValidationException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "ExternalServiceException",
    "RemoteServiceException",
]
