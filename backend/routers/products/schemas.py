from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from services.catalog import GroupedProduct


# Product Schemas
class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    image_url: Optional[str] = Field(None, max_length=500)
    price: float = Field(..., gt=0)
    stock: int = Field(0, ge=0)
    is_local_specialty: bool = False


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    image_url: Optional[str] = Field(None, max_length=500)
    price: Optional[float] = Field(None, gt=0)
    stock: Optional[int] = Field(None, ge=0)
    is_local_specialty: Optional[bool] = None


class ProductResponse(BaseModel):
    id: str
    seller_id: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    image_url: Optional[str] = None
    price: float
    stock: int
    is_local_specialty: bool = False
    is_bulk: bool = False
    created_at: datetime
    updated_at: datetime


class ProductWithSellerResponse(ProductResponse):
    seller_name: Optional[str] = None


class ProductListResponse(BaseModel):
    """Response schema for product listing"""
    products: List[ProductWithSellerResponse]
    total: int


class ProductImageUpload(BaseModel):
    """Response schema for product image upload"""
    image_url: str
    message: str


# Catalog schemas
class CatalogResponse(BaseModel):
    products: List[GroupedProduct]
    categories: List[str] = Field(description="Display order: Local Specialties first, then alphabetical")
    total: int


class ProductChangeEvent(BaseModel):
    """Supabase database webhook payload for the products table"""
    type: str = Field(description="INSERT, UPDATE or DELETE")
    table: str = "products"
    record: Optional[Dict[str, Any]] = None
    old_record: Optional[Dict[str, Any]] = None


class ProductChangeResponse(BaseModel):
    applied: bool
    cached_listings: int
