"""
Core Application - Infrastructure & Base Classes

Generic building blocks shared by the domain apps. No property or ledger
rules live here.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key
    - VersionedMixin: Version counter for optimistic locking

Managers (import from core.managers):
    - BaseQuerySet: Queryset with date-range and ordering helpers

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - ValidationError, NotFoundError, PermissionDeniedError, ConflictError

Protocols (import from core.protocols):
    - CacheInvalidator: Pattern-based cache invalidation
    - Notifier: Property-wide notification broadcast

Note:
    Django models and model mixins are NOT imported here to avoid
    AppRegistryNotReady errors. Import them directly from their modules.
"""

from .services import BaseService, ServiceResult

from .exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

from .protocols import CacheInvalidator, Notifier

__all__ = [
    # Services
    "BaseService",
    "ServiceResult",
    # Exceptions
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "ConflictError",
    # Protocols
    "CacheInvalidator",
    "Notifier",
]
