# app/schemas/auth.py

from typing import Optional

from pydantic import BaseModel


class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class Token(BaseModel):
    token: str
