from typing import Optional

from pydantic import BaseModel, Field


class SpotCreate(BaseModel):
    image_url: str = Field(..., min_length=1)
    thumbnail: Optional[str] = None
    caption: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    location_name: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = Field(None, ge=1885, le=2100)
    is_challenge: bool = False
    correct_answer: Optional[str] = None


class SpotUpdate(BaseModel):
    caption: Optional[str] = None
    location_name: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = Field(None, ge=1885, le=2100)


class GuessCreate(BaseModel):
    make: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    year: Optional[int] = Field(None, ge=1885, le=2100)


class RatingCreate(BaseModel):
    rating: int = Field(..., ge=1, le=10, description="Rarity from 1 (common) to 10 (unicorn)")


class CommentCreate(BaseModel):
    content: str = Field(..., max_length=2000)
    parent_id: Optional[int] = None
