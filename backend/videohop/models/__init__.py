"""SQLAlchemy models package - imports all models so they register with Base.metadata"""
from videohop.models.base import Base
from videohop.models.oauth_token import OAuthToken

__all__ = ["Base", "OAuthToken"]
