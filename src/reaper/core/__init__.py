"""
Reaper core module.

Contains the error taxonomy, the generic resource view and the
collaborator contracts.
"""

from reaper.core.errors import (
    ConfigError,
    DeletionFailedError,
    FieldNotFoundError,
    InvalidTimestampError,
    InvalidTTLValueError,
    ListFailedError,
    NoMatchingMappingError,
    NoTTLConfiguredError,
    PolicyValidationError,
    ReaperError,
    ResolutionFailedError,
    ResourceNotFoundError,
    StatusUpdateFailedError,
    TransientAPIError,
    TTLConfigError,
    with_policy,
    with_resource,
)
from reaper.core.interfaces import (
    Deleter,
    Discovery,
    EventRecorder,
    EventType,
    Leadership,
    PolicySource,
    ResourceLister,
    StatusUpdater,
)
from reaper.core.resource import FieldLookup, LookupStatus, Resource, lookup_path

__all__ = [
    # Errors
    "ReaperError",
    "ResolutionFailedError",
    "ListFailedError",
    "TTLConfigError",
    "NoTTLConfiguredError",
    "FieldNotFoundError",
    "InvalidTimestampError",
    "InvalidTTLValueError",
    "NoMatchingMappingError",
    "DeletionFailedError",
    "StatusUpdateFailedError",
    "PolicyValidationError",
    "ResourceNotFoundError",
    "TransientAPIError",
    "ConfigError",
    "with_policy",
    "with_resource",
    # Resources
    "Resource",
    "FieldLookup",
    "LookupStatus",
    "lookup_path",
    # Contracts
    "Discovery",
    "ResourceLister",
    "Deleter",
    "StatusUpdater",
    "EventRecorder",
    "EventType",
    "Leadership",
    "PolicySource",
]
