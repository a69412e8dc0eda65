# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Repository for API definitions"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional

from ..models.api_definition import APIDefinition, APIDefinitionStatus


class APIDefinitionRepository:
    """Repository for API definition database operations"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, definition: APIDefinition) -> APIDefinition:
        self.session.add(definition)
        await self.session.flush()
        await self.session.refresh(definition)
        return definition

    async def get_by_id(self, api_definition_id: str) -> Optional[APIDefinition]:
        result = await self.session.execute(
            select(APIDefinition).where(APIDefinition.id == api_definition_id)
        )
        return result.scalar_one_or_none()

    async def set_status(self, definition: APIDefinition, status: APIDefinitionStatus) -> APIDefinition:
        definition.status = status
        await self.session.flush()
        return definition

    async def delete(self, definition: APIDefinition) -> None:
        await self.session.delete(definition)
        await self.session.flush()
