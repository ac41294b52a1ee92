"""Read-only farm and crop lookups.

Farms and crops are owned by an external CRUD service; this module only
reads them.
"""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.crops import Crop, CropHealth
from app.models.enums import CropStatusEnum
from app.models.farm import Farm


class FarmService:
	def __init__(self, db: AsyncSession):
		self.db = db

	async def get_farm(self, farm_id: uuid.UUID) -> Farm:
		farm = await self.db.get(Farm, farm_id)
		if farm is None:
			raise LookupError(f"farm not found: {farm_id}")
		return farm

	async def get_crop(self, crop_id: uuid.UUID) -> Crop:
		crop = await self.db.get(Crop, crop_id)
		if crop is None:
			raise LookupError(f"crop not found: {crop_id}")
		return crop

	async def list_active_crops(self, farm_id: uuid.UUID) -> list[Crop]:
		stmt = (
			select(Crop)
			.where(Crop.farm_id == farm_id, Crop.status == CropStatusEnum.active)
			.order_by(Crop.created_at.asc(), Crop.id.asc())
		)
		rows = await self.db.execute(stmt)
		return list(rows.scalars().all())

	async def latest_health(self, crop_id: uuid.UUID) -> CropHealth | None:
		stmt = (
			select(CropHealth)
			.where(CropHealth.crop_id == crop_id)
			.order_by(CropHealth.recorded_at.desc(), CropHealth.id.desc())
			.limit(1)
		)
		rows = await self.db.execute(stmt)
		return rows.scalars().first()
