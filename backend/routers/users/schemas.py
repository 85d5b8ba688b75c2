from pydantic import BaseModel, Field
from typing import Literal, Optional
from datetime import datetime


class UserProfileCreate(BaseModel):
    full_name: Optional[str] = Field(None, max_length=150)
    business_name: Optional[str] = Field(None, max_length=200)
    role: Literal["customer", "retailer", "wholesaler"] = "customer"
    phone: Optional[str] = Field(None, max_length=20)
    location_address: Optional[str] = Field(None, max_length=500)
    location_lat: Optional[float] = Field(None, ge=-90, le=90)
    location_lng: Optional[float] = Field(None, ge=-180, le=180)


class UserProfileUpdate(BaseModel):
    """Role is fixed at signup and cannot be changed here"""
    full_name: Optional[str] = Field(None, max_length=150)
    business_name: Optional[str] = Field(None, max_length=200)
    phone: Optional[str] = Field(None, max_length=20)
    location_address: Optional[str] = Field(None, max_length=500)
    location_lat: Optional[float] = Field(None, ge=-90, le=90)
    location_lng: Optional[float] = Field(None, ge=-180, le=180)


class UserProfileResponse(BaseModel):
    id: str
    user_id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    business_name: Optional[str] = None
    display_name: Optional[str] = None
    role: str
    phone: Optional[str] = None
    location_address: Optional[str] = None
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None
    created_at: datetime
    updated_at: datetime
