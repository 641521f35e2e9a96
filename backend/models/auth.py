from pydantic import BaseModel
from typing import Optional


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: Optional[str] = None
    email: Optional[str] = None


class TokenData(BaseModel):
    user_id: str
    email: Optional[str] = None
