"""
Error taxonomy for Reaper.

All Reaper errors inherit from ReaperError and include:
- A unique error code for programmatic handling
- A human-readable message
- Optional retry hints for operators fixing a policy
- Details carrying policy/resource identity

Errors fall into two scopes. Resource-scoped errors (TTL configuration,
deletion failures) are accumulated and never stop a cycle. Policy-cycle
scoped errors (resolution, listing) abort one policy's cycle, which is
retried on its next interval. Nothing here is process-fatal.
"""

from typing import Any


class ReaperError(Exception):
    """
    Base class for all Reaper errors.

    Attributes:
        code: Unique error code for programmatic handling
        message: Human-readable error message
        retry_hints: Suggestions for how to fix the error
        details: Additional error context
    """

    code: str = "REAPER_ERROR"

    def __init__(
        self,
        message: str,
        *,
        retry_hints: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.retry_hints = retry_hints or []
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert error to a dictionary for serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "retry_hints": self.retry_hints,
            "details": self.details,
        }


class ResolutionFailedError(ReaperError):
    """The target apiVersion/kind could not be mapped to a resource type."""

    code = "RESOLUTION_FAILED"

    def __init__(
        self,
        api_version: str,
        kind: str,
        reason: str,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            f"Cannot resolve resource type for {api_version!r}/{kind!r}: {reason}",
            retry_hints=["apiVersion must be 'v1' (core API) or 'group/version'"],
            details={"api_version": api_version, "kind": kind, "reason": reason},
            **kwargs,
        )


class ListFailedError(ReaperError):
    """The resource lister failed to return a snapshot."""

    code = "LIST_FAILED"

    def __init__(
        self,
        resource_type: str,
        namespace: str,
        cause: BaseException | None = None,
        **kwargs: Any,
    ) -> None:
        message = f"Failed to list {resource_type} in namespace {namespace!r}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(
            message,
            details={"resource_type": resource_type, "namespace": namespace},
            **kwargs,
        )
        self.cause = cause


class TTLConfigError(ReaperError):
    """Base class for errors computing a resource's expiry."""

    code = "TTL_CONFIG_ERROR"


class NoTTLConfiguredError(TTLConfigError):
    """The TTL spec has no active mode."""

    code = "NO_TTL_CONFIGURED"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(
            "No TTL configured",
            retry_hints=[
                "Set one of secondsAfterCreation, fieldPath or relativeTo",
            ],
            **kwargs,
        )


class FieldNotFoundError(TTLConfigError):
    """A field path referenced by the TTL spec is absent on the resource."""

    code = "FIELD_NOT_FOUND"

    def __init__(self, field_path: str, **kwargs: Any) -> None:
        super().__init__(
            f"Field {field_path!r} not found",
            details={"field_path": field_path},
            **kwargs,
        )


class InvalidTimestampError(TTLConfigError):
    """A timestamp field could not be parsed as RFC 3339."""

    code = "INVALID_TIMESTAMP"

    def __init__(self, field_path: str, value: Any, **kwargs: Any) -> None:
        super().__init__(
            f"Field {field_path!r} is not a valid timestamp: {value!r}",
            details={"field_path": field_path, "value": str(value)},
            **kwargs,
        )


class InvalidTTLValueError(TTLConfigError):
    """A field used as the TTL does not hold a number."""

    code = "INVALID_TTL_VALUE"

    def __init__(self, field_path: str, value: Any, **kwargs: Any) -> None:
        super().__init__(
            f"Field {field_path!r} is not a valid TTL: {value!r}",
            details={"field_path": field_path, "value": str(value)},
            **kwargs,
        )


class NoMatchingMappingError(TTLConfigError):
    """A mapped TTL value has no table entry and no default."""

    code = "NO_MATCHING_MAPPING"

    def __init__(self, field_path: str, value: Any, **kwargs: Any) -> None:
        super().__init__(
            f"No TTL mapping for {field_path}={value!r} and no default set",
            retry_hints=["Add the value to ttl.mappings or set ttl.default"],
            details={"field_path": field_path, "value": str(value)},
            **kwargs,
        )


class DeletionFailedError(ReaperError):
    """A single resource could not be deleted."""

    code = "DELETION_FAILED"

    def __init__(
        self,
        resource: str,
        cause: BaseException | None = None,
        **kwargs: Any,
    ) -> None:
        message = f"Failed to delete {resource}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message, details={"resource": resource}, **kwargs)
        self.cause = cause


class StatusUpdateFailedError(ReaperError):
    """Persisting a policy's status failed. Self-heals on the next cycle."""

    code = "STATUS_UPDATE_FAILED"

    def __init__(
        self,
        policy: str,
        cause: BaseException | None = None,
        **kwargs: Any,
    ) -> None:
        message = f"Failed to update status of policy {policy}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message, details={"policy": policy}, **kwargs)
        self.cause = cause


class PolicyValidationError(ReaperError):
    """A policy document violates one or more structural rules."""

    code = "POLICY_INVALID"

    def __init__(self, policy: str, violations: list[str], **kwargs: Any) -> None:
        super().__init__(
            f"Policy {policy} is invalid: {'; '.join(violations)}",
            retry_hints=violations,
            details={"policy": policy, "violations": violations},
            **kwargs,
        )
        self.violations = violations


class ResourceNotFoundError(ReaperError):
    """
    Raised by a deleter when the resource is already gone.

    Deletion is idempotent: the executor counts this as a success.
    """

    code = "RESOURCE_NOT_FOUND"


class TransientAPIError(ReaperError):
    """
    Raised by collaborators for retryable API failures.

    Covers timeouts, server timeouts, throttling (429) and unavailability (503).
    """

    code = "TRANSIENT_API_ERROR"

    def __init__(
        self,
        message: str,
        status: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, details={"status": status}, **kwargs)
        self.status = status


class ConfigError(ReaperError):
    """Controller configuration is invalid."""

    code = "CONFIG_INVALID"

    def __init__(self, problems: list[str], **kwargs: Any) -> None:
        super().__init__(
            f"Invalid configuration: {'; '.join(problems)}",
            details={"problems": problems},
            **kwargs,
        )
        self.problems = problems


def with_policy(err: ReaperError, namespace: str, name: str) -> ReaperError:
    """Attach policy identity to an error's details and return it."""
    err.details["policy_namespace"] = namespace
    err.details["policy_name"] = name
    return err


def with_resource(err: ReaperError, namespace: str, name: str) -> ReaperError:
    """Attach resource identity to an error's details and return it."""
    err.details["resource_namespace"] = namespace
    err.details["resource_name"] = name
    return err
