from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CarCreate(BaseModel):
    generation_id: Optional[int] = None
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = Field(None, ge=1885, le=2100)
    nickname: Optional[str] = None
    horsepower: Optional[int] = Field(None, ge=0, description="Horsepower (hp)")
    torque: Optional[int] = Field(None, ge=0, description="Torque (Nm)")


class CarUpdate(CarCreate):
    pass


class CarOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    generation_id: Optional[int] = None
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    nickname: Optional[str] = None
    horsepower: Optional[int] = None
    torque: Optional[int] = None
    created_at: Optional[datetime] = None


class HistoryEntryCreate(BaseModel):
    title: str = Field(..., min_length=1)
    cost: Optional[float] = Field(None, ge=0)
    occurred_on: Optional[date] = None


class HistoryEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    car_id: int
    title: str
    cost: Optional[float] = None
    occurred_on: Optional[date] = None


class MakeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: str


class CarModelOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    make_id: int
    name: str
    slug: str


class GenerationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    model_id: int
    name: str
    display_name: Optional[str] = None
