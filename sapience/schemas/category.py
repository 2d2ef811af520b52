from pydantic import BaseModel, Field
from datetime import datetime


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class Category(BaseModel):
    id: int
    name: str
    created_at: datetime

    class Config:
        from_attributes = True
