# coursecert/schemas/user.py

from pydantic import BaseModel, EmailStr

class UserCreate(BaseModel):
    name: str
    email: EmailStr
    password: str

class UserResponse(BaseModel):
    id: int
    name: str
    email: EmailStr
    role: str

    class Config:
        model_config = {"from_attributes": True}


class UserLogin(BaseModel):
    email: EmailStr
    password: str
