# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Repository for product refs"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional

from ..models.product_ref import ProductRef


class ProductRefRepository:
    """Repository for product ref database operations"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, product_id: str) -> Optional[ProductRef]:
        result = await self.session.execute(
            select(ProductRef).where(ProductRef.product_id == product_id)
        )
        return result.scalar_one_or_none()

    async def get_or_create(self, product_id: str, api_definition_id: str) -> ProductRef:
        ref = await self.get(product_id)
        if ref is None:
            ref = ProductRef(product_id=product_id, api_definition_id=api_definition_id, stale=True)
            self.session.add(ref)
            await self.session.flush()
        return ref
