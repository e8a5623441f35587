"""Connected accounts API routes"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from videohop.api.deps import get_session, get_token_manager
from videohop.core.config import PLATFORMS
from videohop.schemas.account import AccountConnectRequest, TokenSet
from videohop.services.session_context import SessionContext
from videohop.services.token_service import TokenLifecycleManager

token_logger = logging.getLogger("token")

router = APIRouter(prefix="/api/accounts", tags=["accounts"])


def _check_platform(platform: str) -> None:
    if platform not in PLATFORMS:
        raise HTTPException(404, f"Unknown platform: {platform}")


@router.get("")
def list_accounts(
    session: SessionContext = Depends(get_session),
    tokens: TokenLifecycleManager = Depends(get_token_manager)
):
    """Connection status per platform (tokens are never returned)"""
    result = {}
    for platform in PLATFORMS:
        account = session.get_account(platform)
        result[platform] = {
            "connected": account is not None,
            "token_expired": tokens.is_expired(account.expires_at) if account else False,
            "account": account.public_view() if account else None,
        }
    return result


@router.post("/{platform}")
def connect_account(
    platform: str,
    request: AccountConnectRequest,
    session: SessionContext = Depends(get_session)
):
    """Connect an account from the token triple produced by the OAuth code exchange"""
    _check_platform(platform)
    tokens = TokenSet(
        access_token=request.access_token,
        refresh_token=request.refresh_token,
        expires_at=request.expires_at
    )
    account = session.connect(platform, request.id, tokens, request.profile)
    return account.public_view()


@router.post("/{platform}/refresh")
async def refresh_account(
    platform: str,
    session: SessionContext = Depends(get_session),
    tokens: TokenLifecycleManager = Depends(get_token_manager)
):
    """Refresh the platform's access token now"""
    _check_platform(platform)
    account = session.get_account(platform)
    if account is None:
        raise HTTPException(404, f"{platform} account not connected")
    if not account.can_refresh:
        raise HTTPException(401, {"error": "No refresh token available", "needs_reauth": True})

    access_token = await tokens.refresh_account(account, persist=session.save_account)
    if not access_token:
        token_logger.warning(f"Manual {platform} token refresh failed")
        raise HTTPException(401, {"error": "Failed to refresh token", "needs_reauth": True})

    refreshed = session.get_account(platform)
    return {"success": True, "account": refreshed.public_view() if refreshed else None}


@router.delete("/{platform}")
def disconnect_account(platform: str, session: SessionContext = Depends(get_session)):
    _check_platform(platform)
    return {"disconnected": session.disconnect(platform)}
