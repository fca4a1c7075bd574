from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class UserSchema(BaseModel):
    email: EmailStr = Field(...)
    username: str = Field(..., min_length=3, max_length=30)
    password: str = Field(..., min_length=8)
    name: Optional[str] = None
    country: Optional[str] = None

    @field_validator('username')
    def username_chars(cls, v):
        if not v.replace("_", "").replace("-", "").isalnum():
            raise ValueError("Username may only contain letters, digits, '-' and '_'")
        return v.lower()


class UserLoginSchema(BaseModel):
    email: EmailStr = Field(...)
    password: str = Field(...)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    username: str
    name: Optional[str] = None
    country: Optional[str] = None
    role: str
    created_at: Optional[datetime] = None


class UserAdminUpdate(BaseModel):
    role: Optional[str] = None
    name: Optional[str] = None
    country: Optional[str] = None
