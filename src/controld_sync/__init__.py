"""Control D Sync - Expose Control D DNS filtering profiles as switches."""

__version__ = "1.0.0"

from .client import ControlDClient, Device, Profile, is_filtering_enabled
from .exceptions import (
    APIError,
    AuthenticationError,
    ClientError,
    ConfigurationError,
    ControlDSyncError,
    NetworkError,
    RegistryError,
    ServiceCommunicationError,
    TokenPermissionError,
    UnexpectedError,
)
from .registry import CachedEntityRegistry, EntityRegistry, InMemoryEntityRegistry
from .service import ProfileSyncService, ValidityState
from .sync import reconcile, refresh_statuses

__all__ = [
    "__version__",
    "ControlDClient",
    "Profile",
    "Device",
    "is_filtering_enabled",
    "EntityRegistry",
    "InMemoryEntityRegistry",
    "CachedEntityRegistry",
    "ProfileSyncService",
    "ValidityState",
    "reconcile",
    "refresh_statuses",
    "ControlDSyncError",
    "ConfigurationError",
    "RegistryError",
    "ServiceCommunicationError",
    "ClientError",
    "AuthenticationError",
    "TokenPermissionError",
    "APIError",
    "NetworkError",
    "UnexpectedError",
]
