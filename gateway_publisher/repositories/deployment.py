# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Repository for deployment records.

Records of one (API definition, gateway) pair are totally ordered by
``created_at``; "latest" always means the most recent one.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_, func
from typing import Optional, List, Tuple
from datetime import datetime

from ..models.deployment import DeploymentRecord, PublishStatus


class DeploymentRepository:
    """Repository for deployment record database operations"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, record: DeploymentRecord) -> DeploymentRecord:
        """Persist a new PUBLISHING/UNPUBLISHING record"""
        self.session.add(record)
        await self.session.flush()
        await self.session.refresh(record)
        return record

    async def get_by_id(self, deployment_id: str) -> Optional[DeploymentRecord]:
        result = await self.session.execute(
            select(DeploymentRecord).where(DeploymentRecord.id == deployment_id)
        )
        return result.scalar_one_or_none()

    async def list_by_api(
        self,
        api_definition_id: str,
        page: int = 1,
        page_size: int = 50,
    ) -> Tuple[List[DeploymentRecord], int]:
        """Publish history of an API, newest first"""
        query = select(DeploymentRecord).where(
            DeploymentRecord.api_definition_id == api_definition_id
        )

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.session.execute(count_query)).scalar_one()

        query = query.order_by(DeploymentRecord.created_at.desc(), DeploymentRecord.id.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await self.session.execute(query)
        return list(result.scalars().all()), total

    async def get_latest(self, api_definition_id: str, gateway_id: str) -> Optional[DeploymentRecord]:
        """Latest record for one (API, gateway) pair"""
        result = await self.session.execute(
            select(DeploymentRecord)
            .where(
                and_(
                    DeploymentRecord.api_definition_id == api_definition_id,
                    DeploymentRecord.gateway_id == gateway_id,
                )
            )
            .order_by(DeploymentRecord.created_at.desc(), DeploymentRecord.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_latest_per_gateway(self, api_definition_id: str) -> List[DeploymentRecord]:
        """Latest record of every gateway the API was ever sent to, most recent first"""
        result = await self.session.execute(
            select(DeploymentRecord)
            .where(DeploymentRecord.api_definition_id == api_definition_id)
            .order_by(DeploymentRecord.created_at.desc(), DeploymentRecord.id.desc())
        )
        latest: dict[str, DeploymentRecord] = {}
        for record in result.scalars().all():
            latest.setdefault(record.gateway_id, record)
        return list(latest.values())

    async def list_processing_older_than(self, cutoff: datetime) -> List[DeploymentRecord]:
        result = await self.session.execute(
            select(DeploymentRecord).where(
                and_(
                    DeploymentRecord.status.in_([
                        PublishStatus.PUBLISHING,
                        PublishStatus.UNPUBLISHING,
                    ]),
                    DeploymentRecord.created_at < cutoff,
                )
            )
        )
        return list(result.scalars().all())

    async def update_status(
        self,
        record: DeploymentRecord,
        status: PublishStatus,
        error_message: Optional[str] = None,
        resource_ref: Optional[dict] = None,
    ) -> bool:
        """Move a pending record to its terminal state.

        The write only applies while the stored row still has the status
        ``record`` was loaded with. Returns False when another writer moved
        it first; ``record`` is then refreshed to the stored state.
        """
        expected = record.status
        if not record.can_transition_to(status):
            raise ValueError(f"Illegal transition {expected} -> {status} for deployment {record.id}")

        values = {"status": status, "error_message": error_message, "updated_at": datetime.utcnow()}
        if resource_ref is not None:
            values["resource_ref"] = resource_ref
        result = await self.session.execute(
            update(DeploymentRecord)
            .where(and_(DeploymentRecord.id == record.id, DeploymentRecord.status == expected))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(record)
        return result.rowcount == 1
