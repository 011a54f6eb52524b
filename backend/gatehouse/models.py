from pydantic import BaseModel, Field
from typing import List


class LoginPayload(BaseModel):
    # Empty usernames are allowed through; the gate passes them to the credential check untouched.
    username: str = Field(default="", max_length=150)
    password: str = Field(default="", max_length=128)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class EndpointIndex(BaseModel):
    endpoints: List[str]


class Post(BaseModel):
    id: int
    title: str
    author: str
