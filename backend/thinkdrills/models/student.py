from pydantic import BaseModel, EmailStr, Field
from typing import Literal


class SignupRequest(BaseModel):
    name: str = Field(min_length=2)
    email: EmailStr
    password: str = Field(min_length=8)
    role: Literal["parent"] = "parent"


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1)
    password: str = Field(min_length=8)


class CreateStudentRequest(BaseModel):
    name: str = Field(min_length=1)
    user_name: str = Field(min_length=3)
    grade: int = Field(ge=1, le=12)
    password: str = Field(min_length=8)
    categories: list[str] = []
    interests: list[str] = []


class UpdateStudentRequest(BaseModel):
    id: str
    name: str | None = None
    user_name: str | None = None
    grade: int | None = Field(default=None, ge=1, le=12)
    categories: list[str] | None = None
    interests: list[str] | None = None


class StudentPasswordRequest(BaseModel):
    id: str
    password: str = Field(min_length=8)


class Student(BaseModel):
    id: str
    parent_id: str
    name: str
    user_name: str
    grade: int
    categories: list[str] = []
    interests: list[str] = []
