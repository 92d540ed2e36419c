"""Concrete entity repositories."""

from farmledger.models.entities import (
    Buyer,
    BuyerCreate,
    BuyerUpdate,
    Crop,
    CropCreate,
    CropUpdate,
    Worker,
    WorkerCreate,
    WorkerUpdate,
)
from farmledger.repositories.base import EntityRepository


class WorkerRepository(EntityRepository[Worker]):
    model = Worker
    create_model = WorkerCreate
    update_model = WorkerUpdate


class BuyerRepository(EntityRepository[Buyer]):
    model = Buyer
    create_model = BuyerCreate
    update_model = BuyerUpdate


class CropRepository(EntityRepository[Crop]):
    model = Crop
    create_model = CropCreate
    update_model = CropUpdate
