# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Standard error codes and exception classes for the Gateway Publisher.

Every error raised by the core carries a machine-readable code, a
human-readable message, optional details and a remediation suggestion.

Error Response Schema:
```json
{
  "error": {
    "code": "DEPLOYMENT_CONFLICT",
    "message": "API 'a1' is already published on gateway 'g1'",
    "details": {"api_definition_id": "a1", "gateway_id": "g1"},
    "suggestion": "Unpublish from the current gateway before publishing elsewhere"
  }
}
```

Propagation rules:
- ValidationError / ConflictError / NotFoundError are raised synchronously
  from submit calls.
- VendorError raised inside background jobs is captured on the
  DeploymentRecord and never reaches the original caller.
"""

from enum import Enum
from typing import Any


class PublisherErrorCode(str, Enum):
    """Standard error codes.

    Each code maps to a specific HTTP status and a default suggestion.
    """

    # 400 Bad Request
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_OPTIONS = "INVALID_OPTIONS"
    UNSUPPORTED_API_TYPE = "UNSUPPORTED_API_TYPE"
    UNKNOWN_VENDOR = "UNKNOWN_VENDOR"
    DEPLOYMENT_MISMATCH = "DEPLOYMENT_MISMATCH"
    INVALID_SNAPSHOT = "INVALID_SNAPSHOT"

    # 404 Not Found
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    API_DEFINITION_NOT_FOUND = "API_DEFINITION_NOT_FOUND"
    GATEWAY_NOT_FOUND = "GATEWAY_NOT_FOUND"
    DEPLOYMENT_NOT_FOUND = "DEPLOYMENT_NOT_FOUND"
    PRODUCT_REF_NOT_FOUND = "PRODUCT_REF_NOT_FOUND"

    # 409 Conflict
    DEPLOYMENT_CONFLICT = "DEPLOYMENT_CONFLICT"
    DEPLOYMENT_IN_PROGRESS = "DEPLOYMENT_IN_PROGRESS"
    API_IN_USE = "API_IN_USE"

    # 500 Internal Server Error
    INTERNAL_ERROR = "INTERNAL_ERROR"

    # 501 Not Implemented
    UNSUPPORTED_FOR_VENDOR = "UNSUPPORTED_FOR_VENDOR"

    # 502 Bad Gateway
    VENDOR_ERROR = "VENDOR_ERROR"

    # 503 Service Unavailable
    WORKER_UNAVAILABLE = "WORKER_UNAVAILABLE"


ERROR_CODE_TO_HTTP_STATUS: dict[PublisherErrorCode, int] = {
    # 400
    PublisherErrorCode.VALIDATION_ERROR: 400,
    PublisherErrorCode.INVALID_OPTIONS: 400,
    PublisherErrorCode.UNSUPPORTED_API_TYPE: 400,
    PublisherErrorCode.UNKNOWN_VENDOR: 400,
    PublisherErrorCode.DEPLOYMENT_MISMATCH: 400,
    PublisherErrorCode.INVALID_SNAPSHOT: 400,
    # 404
    PublisherErrorCode.RESOURCE_NOT_FOUND: 404,
    PublisherErrorCode.API_DEFINITION_NOT_FOUND: 404,
    PublisherErrorCode.GATEWAY_NOT_FOUND: 404,
    PublisherErrorCode.DEPLOYMENT_NOT_FOUND: 404,
    PublisherErrorCode.PRODUCT_REF_NOT_FOUND: 404,
    # 409
    PublisherErrorCode.DEPLOYMENT_CONFLICT: 409,
    PublisherErrorCode.DEPLOYMENT_IN_PROGRESS: 409,
    PublisherErrorCode.API_IN_USE: 409,
    # 500
    PublisherErrorCode.INTERNAL_ERROR: 500,
    # 501
    PublisherErrorCode.UNSUPPORTED_FOR_VENDOR: 501,
    # 502
    PublisherErrorCode.VENDOR_ERROR: 502,
    # 503
    PublisherErrorCode.WORKER_UNAVAILABLE: 503,
}


ERROR_CODE_SUGGESTIONS: dict[PublisherErrorCode, str] = {
    PublisherErrorCode.VALIDATION_ERROR: "Check the request against the API schema",
    PublisherErrorCode.INVALID_OPTIONS: "Fix the deployment options for the target gateway and resubmit",
    PublisherErrorCode.UNSUPPORTED_API_TYPE: "List the gateway capabilities to see which API types it accepts",
    PublisherErrorCode.UNKNOWN_VENDOR: "Verify the gateway vendor tag of the gateway record",
    PublisherErrorCode.DEPLOYMENT_MISMATCH: "Use a deployment id that belongs to this API definition",
    PublisherErrorCode.INVALID_SNAPSHOT: "The stored snapshot cannot be replayed; publish again to create a fresh one",
    PublisherErrorCode.RESOURCE_NOT_FOUND: "Verify the resource ID exists",
    PublisherErrorCode.API_DEFINITION_NOT_FOUND: "Verify the API definition ID",
    PublisherErrorCode.GATEWAY_NOT_FOUND: "Verify the gateway ID",
    PublisherErrorCode.DEPLOYMENT_NOT_FOUND: "List deployments of the API to find a valid ID",
    PublisherErrorCode.PRODUCT_REF_NOT_FOUND: "Publish the API before reading its resolved configuration",
    PublisherErrorCode.DEPLOYMENT_CONFLICT: "Unpublish from the current gateway before publishing elsewhere",
    PublisherErrorCode.DEPLOYMENT_IN_PROGRESS: "Wait for the running publish/unpublish to finish and poll its status",
    PublisherErrorCode.API_IN_USE: "Unpublish the API from every gateway before deleting it",
    PublisherErrorCode.INTERNAL_ERROR: "Retry the request; if persistent, contact support",
    PublisherErrorCode.UNSUPPORTED_FOR_VENDOR: "This operation is not available for the gateway vendor",
    PublisherErrorCode.VENDOR_ERROR: "The gateway returned an error; check the gateway console",
    PublisherErrorCode.WORKER_UNAVAILABLE: "The deployment worker queue is full; retry later",
}


class PublisherError(Exception):
    """Base exception for all publisher errors.

    Usage:
        raise PublisherError(
            code=PublisherErrorCode.DEPLOYMENT_CONFLICT,
            message=f"API '{api_id}' is already published on gateway '{gateway_id}'",
            details={"api_definition_id": api_id, "gateway_id": gateway_id},
        )
    """

    default_code = PublisherErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        code: PublisherErrorCode | str | None = None,
        details: dict[str, Any] | None = None,
        suggestion: str | None = None,
    ):
        if code is None:
            code = self.default_code
        self.code = code if isinstance(code, PublisherErrorCode) else PublisherErrorCode(code)
        self.message = message
        self.details = details
        self.suggestion = suggestion or ERROR_CODE_SUGGESTIONS.get(self.code)
        super().__init__(message)

    @property
    def http_status(self) -> int:
        """Get HTTP status code for this error."""
        return ERROR_CODE_TO_HTTP_STATUS.get(self.code, 500)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
                "suggestion": self.suggestion,
            }
        }


# =============================================================================
# Error families
# =============================================================================


class ValidationError(PublisherError):
    """Bad input, raised before any record is written."""

    default_code = PublisherErrorCode.VALIDATION_ERROR


class NotFoundError(PublisherError):
    """Unknown API, gateway, deployment or product id."""

    default_code = PublisherErrorCode.RESOURCE_NOT_FOUND


class ConflictError(PublisherError):
    """Overlapping in-flight or cross-gateway deployment."""

    default_code = PublisherErrorCode.DEPLOYMENT_CONFLICT


class VendorError(PublisherError):
    """A downstream gateway returned a failure."""

    default_code = PublisherErrorCode.VENDOR_ERROR

    def __init__(
        self,
        message: str,
        vendor: str | None = None,
        vendor_code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.vendor = vendor
        self.vendor_code = vendor_code
        self.status_code = status_code
        merged = dict(details or {})
        if vendor:
            merged.setdefault("vendor", vendor)
        if vendor_code:
            merged.setdefault("vendor_code", vendor_code)
        if status_code is not None:
            merged.setdefault("status_code", status_code)
        super().__init__(message, details=merged or None)

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class UnsupportedOperationError(PublisherError):
    """The operation is not available for this gateway vendor."""

    default_code = PublisherErrorCode.UNSUPPORTED_FOR_VENDOR

    def __init__(self, vendor: str, operation: str):
        self.vendor = vendor
        self.operation = operation
        super().__init__(
            f"{operation} is not supported for {vendor} gateways",
            details={"vendor": vendor, "operation": operation},
        )


# =============================================================================
# Specific Error Classes (Convenience)
# =============================================================================


class APIDefinitionNotFoundError(NotFoundError):
    def __init__(self, api_definition_id: str):
        super().__init__(
            f"API definition '{api_definition_id}' not found",
            code=PublisherErrorCode.API_DEFINITION_NOT_FOUND,
            details={"api_definition_id": api_definition_id},
        )


class GatewayNotFoundError(NotFoundError):
    def __init__(self, gateway_id: str):
        super().__init__(
            f"Gateway '{gateway_id}' not found",
            code=PublisherErrorCode.GATEWAY_NOT_FOUND,
            details={"gateway_id": gateway_id},
        )


class DeploymentNotFoundError(NotFoundError):
    def __init__(self, deployment_id: str):
        super().__init__(
            f"Deployment '{deployment_id}' not found",
            code=PublisherErrorCode.DEPLOYMENT_NOT_FOUND,
            details={"deployment_id": deployment_id},
        )


class ProductRefNotFoundError(NotFoundError):
    def __init__(self, product_id: str):
        super().__init__(
            f"No resolved configuration for product '{product_id}'",
            code=PublisherErrorCode.PRODUCT_REF_NOT_FOUND,
            details={"product_id": product_id},
        )
