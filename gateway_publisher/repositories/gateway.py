# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Repository for gateway records"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional, List

from ..models.gateway import GatewayRecord, GatewayVendor


class GatewayRepository:
    """Repository for gateway database operations"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, gateway: GatewayRecord) -> GatewayRecord:
        self.session.add(gateway)
        await self.session.flush()
        await self.session.refresh(gateway)
        return gateway

    async def get_by_id(self, gateway_id: str) -> Optional[GatewayRecord]:
        result = await self.session.execute(
            select(GatewayRecord).where(GatewayRecord.id == gateway_id)
        )
        return result.scalar_one_or_none()

    async def list_all(self, vendor: Optional[GatewayVendor] = None) -> List[GatewayRecord]:
        query = select(GatewayRecord)
        if vendor:
            query = query.where(GatewayRecord.vendor == vendor)
        result = await self.session.execute(query.order_by(GatewayRecord.created_at.desc()))
        return list(result.scalars().all())
