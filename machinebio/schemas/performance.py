from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class PerformanceTimeCreate(BaseModel):
    car_id: int
    category: str = Field(..., description="0-100 | 100-200 | 200-300 | 402m | 1000m | track")
    time_ms: int = Field(..., gt=0, description="Run time in milliseconds")
    proof_url: Optional[str] = None
    proof_type: Optional[str] = None
    run_date: Optional[datetime] = None
    location: Optional[str] = None
    weather: Optional[str] = None
    altitude: Optional[int] = None


class PerformanceReview(BaseModel):
    status: str = Field(..., description="pending | approved | rejected")
    review_note: Optional[str] = None
