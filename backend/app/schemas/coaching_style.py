import uuid

from pydantic import BaseModel, Field

from app.engine.matching import MappingType


class StyleCreate(BaseModel):
    style_key: str = Field(..., max_length=100)
    label: str = Field(..., max_length=255)
    description: str | None = Field(None, max_length=1000)
    emoji: str | None = Field(None, max_length=16)
    display_order: int = 0


class StyleUpdate(BaseModel):
    style_key: str | None = Field(None, max_length=100)
    label: str | None = Field(None, max_length=255)
    description: str | None = Field(None, max_length=1000)
    emoji: str | None = Field(None, max_length=16)
    display_order: int | None = None
    is_active: bool | None = None


class StyleRead(BaseModel):
    id: uuid.UUID
    style_key: str
    label: str
    description: str | None = None
    emoji: str | None = None
    display_order: int
    is_active: bool

    model_config = {"from_attributes": True}


class MappingCreate(BaseModel):
    client_style_id: uuid.UUID
    trainer_style_id: uuid.UUID
    mapping_type: str = "primary"
    weight: int | None = None


class MappingUpdate(BaseModel):
    mapping_type: str | None = None
    weight: int | None = None


class MappingRead(BaseModel):
    id: uuid.UUID
    client_style_id: uuid.UUID
    trainer_style_id: uuid.UUID
    weight: int
    mapping_type: MappingType

    model_config = {"from_attributes": True}


class MappingWarnings(BaseModel):
    unmapped_client_styles: list[StyleRead]
    unmapped_trainer_styles: list[StyleRead]


class StyleSelection(BaseModel):
    style_ids: list[uuid.UUID]


class ContributionRead(BaseModel):
    client_style_id: uuid.UUID
    weight: int
    trainer_style_id: uuid.UUID | None = None
    mapping_type: MappingType | None = None


class MatchRead(BaseModel):
    trainer_id: uuid.UUID
    score: float
    contributions: list[ContributionRead]
    unmapped_client_styles: list[uuid.UUID]
