import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from app.engine.selection_machine import RequestStatus


class PackageChoice(BaseModel):
    package_id: str = Field(..., max_length=100)
    package_name: str = Field(..., max_length=255)
    package_price: Decimal = Field(..., ge=0)
    package_duration: str = Field(..., max_length=100)
    client_message: str | None = Field(None, max_length=2000)


class SelectionRequestCreate(PackageChoice):
    trainer_id: uuid.UUID


class TrainerResponse(BaseModel):
    trainer_response: str | None = Field(None, max_length=2000)


class AlternativeSuggestion(BaseModel):
    package_id: str = Field(..., max_length=100)
    package_name: str = Field(..., max_length=255)
    package_price: Decimal = Field(..., ge=0)
    package_duration: str | None = Field(None, max_length=100)
    trainer_response: str | None = Field(None, max_length=2000)


class PaymentCompleted(BaseModel):
    payment_reference: str | None = Field(None, max_length=255)


class SelectionRequestRead(BaseModel):
    id: uuid.UUID
    client_id: uuid.UUID
    trainer_id: uuid.UUID
    package_id: str
    package_name: str
    package_price: Decimal
    package_duration: str | None = None
    client_message: str | None = None
    status: RequestStatus
    suggested_alternative_package_id: str | None = None
    suggested_alternative_package_name: str | None = None
    suggested_alternative_package_price: Decimal | None = None
    suggested_alternative_package_duration: str | None = None
    trainer_response: str | None = None
    responded_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
