from pydantic import BaseModel, Field
from datetime import datetime


class ProfileUpdate(BaseModel):
    interests: str = Field(min_length=1, max_length=5000)


class Profile(BaseModel):
    user_id: int
    interests: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
