"""Persistence for connected accounts

The session context reads and writes accounts through one of these stores.
The in-memory store is the default; the database store keeps encrypted
tokens in the ``oauth_tokens`` table so connections survive restarts.
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Protocol

from cryptography.fernet import Fernet
from sqlalchemy.orm import Session

from videohop.models.oauth_token import OAuthToken
from videohop.schemas.account import Account
from videohop.utils.encryption import decrypt, encrypt

logger = logging.getLogger(__name__)

# Account fields that live in OAuthToken.extra_data
PROFILE_FIELDS = (
    "channel_id", "title", "thumbnail",
    "open_id", "username", "display_name", "avatar",
)


class AccountStore(Protocol):
    def load(self, platform: str) -> Optional[Account]: ...

    def save(self, account: Account) -> None: ...

    def clear(self, platform: str) -> bool: ...


class MemoryAccountStore:
    """Process-local account storage"""

    def __init__(self):
        self._accounts: Dict[str, Account] = {}
        self._lock = threading.Lock()

    def load(self, platform: str) -> Optional[Account]:
        with self._lock:
            return self._accounts.get(platform)

    def save(self, account: Account) -> None:
        with self._lock:
            self._accounts[account.platform] = account

    def clear(self, platform: str) -> bool:
        with self._lock:
            return self._accounts.pop(platform, None) is not None


class DatabaseAccountStore:
    """Account storage backed by the oauth_tokens table (tokens encrypted with Fernet)"""

    def __init__(self, session_factory: Callable[[], Session], cipher: Optional[Fernet] = None):
        self._session_factory = session_factory
        self._cipher = cipher

    def load(self, platform: str) -> Optional[Account]:
        db = self._session_factory()
        try:
            token = db.query(OAuthToken).filter(OAuthToken.platform == platform).first()
            if not token:
                return None

            try:
                access_token = decrypt(token.access_token, self._cipher)
                refresh_token = decrypt(token.refresh_token, self._cipher) if token.refresh_token else None
            except ValueError as e:
                logger.warning(f"Failed to decrypt token for platform {platform}: {e}")
                return None

            profile = {k: v for k, v in (token.extra_data or {}).items() if k in PROFILE_FIELDS}
            return Account(
                platform=platform,
                id=token.account_id,
                access_token=access_token,
                refresh_token=refresh_token,
                expires_at=token.expires_at,
                **profile
            )
        finally:
            db.close()

    def save(self, account: Account) -> None:
        db = self._session_factory()
        try:
            token = db.query(OAuthToken).filter(OAuthToken.platform == account.platform).first()

            encrypted_access = encrypt(account.access_token, self._cipher)
            encrypted_refresh = encrypt(account.refresh_token, self._cipher) if account.refresh_token else None
            extra_data = {k: getattr(account, k) for k in PROFILE_FIELDS if getattr(account, k) is not None}

            if token:
                token.account_id = account.id
                token.access_token = encrypted_access
                # Only overwrite the refresh token when we actually have one
                if encrypted_refresh is not None:
                    token.refresh_token = encrypted_refresh
                token.expires_at = account.expires_at
                token.extra_data = {**(token.extra_data or {}), **extra_data}
                token.updated_at = datetime.now(timezone.utc)
            else:
                token = OAuthToken(
                    platform=account.platform,
                    account_id=account.id,
                    access_token=encrypted_access,
                    refresh_token=encrypted_refresh,
                    expires_at=account.expires_at,
                    extra_data=extra_data
                )
                db.add(token)

            db.commit()
        finally:
            db.close()

    def clear(self, platform: str) -> bool:
        db = self._session_factory()
        try:
            token = db.query(OAuthToken).filter(OAuthToken.platform == platform).first()
            if not token:
                return False
            db.delete(token)
            db.commit()
            return True
        finally:
            db.close()
