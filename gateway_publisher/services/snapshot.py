# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Deployment snapshot codec.

A snapshot freezes the API definition and the deployment options at submit
time so that unpublish replays exactly what was published, even after the
definition was edited.

Stored shape::

    {"kind": "deployment-snapshot", "version": 1,
     "definition": {...}, "options": {...}}

Readers also accept the untagged shape ``{definition, options}`` and the
camelCase shape ``{apiDefinition, deploymentConfig}`` written by older
producers.
"""
import copy
from typing import Any, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from ..errors import PublisherErrorCode, ValidationError
from ..models.api_definition import APIDefinition, APIDefinitionStatus, APIType
from ..schemas.deployment import DeploymentOptions

SNAPSHOT_KIND = "deployment-snapshot"
SNAPSHOT_VERSION = 1
SUPPORTED_VERSIONS = (1,)


def definition_to_dict(definition: APIDefinition) -> dict:
    return {
        "id": definition.id,
        "name": definition.name,
        "description": definition.description,
        "api_type": APIType(definition.api_type).value,
        "status": APIDefinitionStatus(definition.status or APIDefinitionStatus.DRAFT).value,
        "version": definition.version,
        "spec": copy.deepcopy(definition.spec or {}),
        "product_id": definition.product_id,
    }


def _first(data: dict, *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def definition_from_dict(data: dict) -> APIDefinition:
    """Rebuild a transient (never added to a session) APIDefinition."""
    spec = data.get("spec")
    if spec is None:
        # camelCase producers inline the content next to the header fields
        spec = {
            "endpoints": data.get("endpoints") or [],
            "metadata": data.get("metadata") or {},
            "properties": data.get("properties") or [],
        }
    try:
        api_type = APIType(_first(data, "api_type", "apiType", "type"))
        status = APIDefinitionStatus(_first(data, "status") or APIDefinitionStatus.DRAFT.value)
    except ValueError as e:
        raise ValidationError(
            f"Snapshot definition is invalid: {e}",
            code=PublisherErrorCode.INVALID_SNAPSHOT,
        ) from e

    return APIDefinition(
        id=_first(data, "id", "apiDefinitionId"),
        name=data.get("name"),
        description=data.get("description"),
        api_type=api_type,
        status=status,
        version=data.get("version"),
        spec=spec,
        product_id=_first(data, "product_id", "productId"),
    )


def build_snapshot(definition: APIDefinition, options: DeploymentOptions) -> dict:
    return {
        "kind": SNAPSHOT_KIND,
        "version": SNAPSHOT_VERSION,
        "definition": definition_to_dict(definition),
        "options": options.model_dump(mode="json", exclude_none=True),
    }


def read_snapshot(snapshot: Optional[dict]) -> Tuple[APIDefinition, DeploymentOptions]:
    """Decode a stored snapshot into (definition, options).

    Raises:
        ValidationError: INVALID_SNAPSHOT for unknown versions or shapes
    """
    if not isinstance(snapshot, dict):
        raise ValidationError("Deployment snapshot is missing", code=PublisherErrorCode.INVALID_SNAPSHOT)

    if snapshot.get("kind") == SNAPSHOT_KIND or "version" in snapshot:
        version = snapshot.get("version")
        if version not in SUPPORTED_VERSIONS:
            raise ValidationError(
                f"Unsupported snapshot version: {version!r}",
                code=PublisherErrorCode.INVALID_SNAPSHOT,
                details={"version": version, "supported_versions": list(SUPPORTED_VERSIONS)},
            )

    definition_data = _first(snapshot, "definition", "apiDefinition")
    options_data = _first(snapshot, "options", "deploymentConfig") or {}
    if not isinstance(definition_data, dict):
        raise ValidationError(
            "Deployment snapshot carries no definition",
            code=PublisherErrorCode.INVALID_SNAPSHOT,
        )

    try:
        options = DeploymentOptions.model_validate(options_data)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Snapshot options are invalid: {e}",
            code=PublisherErrorCode.INVALID_SNAPSHOT,
        ) from e

    return definition_from_dict(definition_data), options
