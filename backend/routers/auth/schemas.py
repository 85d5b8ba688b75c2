from pydantic import BaseModel, EmailStr, Field
from typing import Literal, Optional

SignupRole = Literal["customer", "retailer", "wholesaler"]


# Request schemas
class UserRegister(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    full_name: Optional[str] = Field(None, max_length=150)
    business_name: Optional[str] = Field(None, max_length=200)
    role: SignupRole = "customer"
    phone: Optional[str] = Field(None, max_length=20)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


# Response schemas
class AuthResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    role: Optional[str] = None
    message: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
