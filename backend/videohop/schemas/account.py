"""Pydantic schemas for connected platform accounts"""
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, field_validator

Platform = Literal["youtube", "tiktok"]


def _coerce_expires_at(value):
    """Accept epoch-millis (as sent by the OAuth callback pages) or datetimes"""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TokenSet(BaseModel):
    """Token triple returned by an OAuth code exchange or a refresh"""
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None

    @field_validator("expires_at", mode="before")
    @classmethod
    def normalize_expires_at(cls, v):
        return _coerce_expires_at(v)


class Account(BaseModel):
    """A connected YouTube or TikTok account

    Only the token lifecycle manager (refresh) and disconnect mutate an
    account; everything else treats it as read-only.
    """
    platform: Platform
    id: str
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None

    # YouTube profile
    channel_id: Optional[str] = None
    title: Optional[str] = None
    thumbnail: Optional[str] = None

    # TikTok profile
    open_id: Optional[str] = None
    username: Optional[str] = None
    display_name: Optional[str] = None
    avatar: Optional[str] = None

    @field_validator("expires_at", mode="before")
    @classmethod
    def normalize_expires_at(cls, v):
        return _coerce_expires_at(v)

    @property
    def can_refresh(self) -> bool:
        return bool(self.refresh_token)

    def with_tokens(self, tokens: TokenSet) -> "Account":
        """Merge refreshed tokens; keeps the old refresh token if the provider omitted one"""
        return self.model_copy(update={
            "access_token": tokens.access_token,
            "refresh_token": tokens.refresh_token or self.refresh_token,
            "expires_at": tokens.expires_at or self.expires_at,
        })

    def public_view(self) -> dict:
        """Account fields safe to hand to the presentation layer (no tokens)"""
        return self.model_dump(exclude={"access_token", "refresh_token"}, exclude_none=True)


class AccountConnectRequest(BaseModel):
    """Request body for connecting an account from an exchanged token triple"""
    id: str
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    profile: dict = {}

    @field_validator("expires_at", mode="before")
    @classmethod
    def normalize_expires_at(cls, v):
        return _coerce_expires_at(v)
