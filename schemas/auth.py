from pydantic import BaseModel
from typing import Optional


class LoginRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    photo: Optional[str] = None

class UserResponse(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    photo: Optional[str] = None

class LoginResponse(BaseModel):
    success: bool
    token: str
    user: UserResponse

class VerifyResponse(BaseModel):
    success: bool
    user: UserResponse

class HealthResponse(BaseModel):
    status: str
    timestamp: str
