from typing import Optional

from pydantic import BaseModel, Field


class DistributorCreate(BaseModel):
    name: str
    email: Optional[str] = None
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    max_capacity: int = Field(gt=0)
    active_flag: bool = True


class DistributorResponse(BaseModel):
    id: int
    name: str
    email: Optional[str]
    lat: float
    lng: float
    current_capacity: int
    max_capacity: int
    active_flag: bool

    class Config:
        from_attributes = True
