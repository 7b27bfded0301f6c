# app/schemas/auth.py
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from app.schemas.user import UserOut


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterIn(BaseModel):
    email: EmailStr
    name: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=6, max_length=128)


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class RefreshTokenIn(CamelModel):
    refresh_token: str = Field(min_length=1)


class AuthData(CamelModel):
    user: UserOut
    access_token: str
    refresh_token: str


class RefreshData(CamelModel):
    access_token: str
    refresh_token: str | None = None


class UserData(CamelModel):
    user: UserOut


class SessionOut(CamelModel):
    created_at: datetime | None = None
    expires_at: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class SessionsData(CamelModel):
    sessions: list[SessionOut]


class Envelope(BaseModel):
    success: bool = True
    message: str | None = None


class AuthOut(Envelope):
    data: AuthData


class RefreshOut(Envelope):
    data: RefreshData


class UserEnvelopeOut(Envelope):
    data: UserData


class SessionsOut(Envelope):
    data: SessionsData


class MessageOut(Envelope):
    data: dict = Field(default_factory=dict)
