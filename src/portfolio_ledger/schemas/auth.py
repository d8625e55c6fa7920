"""Registration and token schemas."""

from pydantic import BaseModel, EmailStr, Field, field_validator


class Token(BaseModel):
    """Bearer token issued by ``/auth/login``.

    ``expires_in`` is the token lifetime in seconds.
    """

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class TokenData(BaseModel):
    """Claims read back from a bearer token. ``subject`` is the username."""

    subject: str


class UserRegister(BaseModel):
    """Sign-up payload. Portfolios are created separately once registered."""

    email: EmailStr
    username: str = Field(..., min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v
