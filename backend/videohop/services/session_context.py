"""Session context: the connected accounts of the current user session"""
import logging
from typing import Dict, Optional

from videohop.core.config import PLATFORMS
from videohop.db.account_store import AccountStore, MemoryAccountStore
from videohop.schemas.account import Account, TokenSet

logger = logging.getLogger(__name__)


class SessionContext:
    """Owns account lookup and persistence for one session

    The orchestrator and the token lifecycle manager receive this object
    instead of reaching for global state; the storage medium is whatever
    AccountStore was injected.
    """

    def __init__(self, store: Optional[AccountStore] = None):
        self.store = store if store is not None else MemoryAccountStore()

    def get_account(self, platform: str) -> Optional[Account]:
        return self.store.load(platform)

    def save_account(self, account: Account) -> None:
        self.store.save(account)

    def is_connected(self, platform: str) -> bool:
        return self.get_account(platform) is not None

    def connected_accounts(self) -> Dict[str, Account]:
        accounts = {}
        for platform in PLATFORMS:
            account = self.get_account(platform)
            if account is not None:
                accounts[platform] = account
        return accounts

    def connect(self, platform: str, account_id: str, tokens: TokenSet,
                profile: Optional[dict] = None) -> Account:
        """Bind an account from the token triple produced by the OAuth code exchange"""
        if platform not in PLATFORMS:
            raise ValueError(f"Unsupported platform: {platform}")

        account = Account(
            platform=platform,
            id=account_id,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=tokens.expires_at,
            **(profile or {})
        )
        self.save_account(account)
        logger.info(f"Connected {platform} account {account_id}")
        return account

    def disconnect(self, platform: str) -> bool:
        removed = self.store.clear(platform)
        if removed:
            logger.info(f"Disconnected {platform} account")
        return removed
