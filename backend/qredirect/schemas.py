from pydantic import BaseModel, EmailStr, Field, field_validator, ConfigDict
from typing import Optional, List
from datetime import datetime
from urllib.parse import urlparse

from .utils import SLUG_PATTERN

# Only web destinations can be the target of a redirect
ALLOWED_URL_SCHEMES = {"http", "https"}


def validate_destination_url(url: str) -> str:
    """Return ``url`` stripped, or raise ``ValueError`` unless it is an absolute http(s) URL."""
    if url is None:
        raise ValueError("URL is required")
    url = url.strip()
    if not url:
        raise ValueError("URL is required")
    if any(c.isspace() for c in url):
        raise ValueError("URL must not contain whitespace")

    parsed = urlparse(url)
    if parsed.scheme.lower() not in ALLOWED_URL_SCHEMES:
        raise ValueError("Please enter a valid URL (http or https)")
    if not parsed.netloc or not parsed.hostname:
        raise ValueError("Please enter a valid URL with a host")
    return url


class UserCreate(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=8)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserOut(BaseModel):
    id: int
    name: str
    email: EmailStr
    namespace: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class NamespaceOut(BaseModel):
    namespace: Optional[str] = None


class QRCreate(BaseModel):
    name: str = Field(min_length=1)
    slug: str = Field(min_length=1, pattern=SLUG_PATTERN)


class RedirectCreate(BaseModel):
    url: str

    @field_validator("url")
    @classmethod
    def validate_url(cls, v):
        return validate_destination_url(v)


class RedirectOut(BaseModel):
    id: int
    qrcode_id: int
    url: str
    is_active: bool
    visit_count: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class QROut(BaseModel):
    id: int
    name: str
    slug: str
    address: str
    created_at: datetime
    active_redirect: Optional[RedirectOut] = None
    total_visits: int = 0

    model_config = ConfigDict(from_attributes=True)


class QRList(BaseModel):
    total: int
    items: List[QROut]
