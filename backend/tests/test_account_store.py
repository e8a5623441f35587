"""Account persistence and session context tests"""
from datetime import datetime, timezone

import httpx
import pytest
from cryptography.fernet import Fernet

from videohop.db.account_store import DatabaseAccountStore, MemoryAccountStore
from videohop.models.oauth_token import OAuthToken
from videohop.schemas.account import Account, TokenSet
from videohop.services.session_context import SessionContext
from videohop.services.upload.errors import parse_error_payload
from videohop.utils.encryption import decrypt, encrypt, get_cipher


@pytest.mark.critical
class TestDatabaseAccountStore:
    """Test encrypted token storage in oauth_tokens"""

    def test_round_trip_with_profile(self, db_store, make_account):
        expires = datetime(2030, 1, 1, tzinfo=timezone.utc)
        db_store.save(make_account("tiktok", expires_at=expires, username="creator", open_id="oid"))

        loaded = db_store.load("tiktok")

        assert loaded.id == "tiktok-account"
        assert loaded.access_token == "access-old"
        assert loaded.refresh_token == "refresh-old"
        assert loaded.expires_at == expires
        assert loaded.username == "creator"
        assert loaded.open_id == "oid"

    def test_tokens_are_encrypted_at_rest(self, db_store, db_session_factory, make_account):
        db_store.save(make_account("youtube"))

        db = db_session_factory()
        try:
            row = db.query(OAuthToken).filter(OAuthToken.platform == "youtube").first()
            assert row.access_token != "access-old"
            assert row.refresh_token != "refresh-old"
        finally:
            db.close()

    def test_update_keeps_refresh_token_when_absent(self, db_store, make_account):
        db_store.save(make_account("youtube"))
        db_store.save(make_account("youtube", access_token="access-2", refresh_token=None))

        loaded = db_store.load("youtube")
        assert loaded.access_token == "access-2"
        assert loaded.refresh_token == "refresh-old"

    def test_clear(self, db_store, make_account):
        db_store.save(make_account("youtube"))

        assert db_store.clear("youtube") is True
        assert db_store.load("youtube") is None
        assert db_store.clear("youtube") is False

    def test_wrong_key_loads_nothing(self, db_store, db_session_factory, make_account):
        db_store.save(make_account("youtube"))
        other = DatabaseAccountStore(db_session_factory, cipher=Fernet(Fernet.generate_key()))

        assert other.load("youtube") is None


@pytest.mark.high
class TestSessionContext:
    """Test connect/disconnect through the injected store"""

    def test_connect_and_disconnect(self, session):
        account = session.connect(
            "youtube", "UC123",
            TokenSet(access_token="a", refresh_token="r", expires_at=1735732800000),
            {"channel_id": "UC123", "title": "My channel", "unknown_field": "ignored"}
        )

        assert account.title == "My channel"
        assert account.expires_at == datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert session.is_connected("youtube")
        assert list(session.connected_accounts()) == ["youtube"]
        assert "access_token" not in account.public_view()

        assert session.disconnect("youtube") is True
        assert session.get_account("youtube") is None

    def test_connect_unknown_platform(self, session):
        with pytest.raises(ValueError):
            session.connect("vimeo", "x", TokenSet(access_token="a"))

    def test_memory_store_is_default(self):
        assert isinstance(SessionContext().store, MemoryAccountStore)

    def test_with_tokens_keeps_old_refresh_token(self, make_account):
        account = make_account()
        updated = account.with_tokens(TokenSet(access_token="new"))
        assert updated.refresh_token == "refresh-old"
        assert updated.expires_at == account.expires_at
        assert account.access_token == "access-old"


@pytest.mark.high
class TestEncryption:
    def test_encrypt_decrypt(self, fernet):
        token = encrypt("secret", fernet)
        assert token != "secret"
        assert decrypt(token, fernet) == "secret"
        assert encrypt("", fernet) == ""
        assert decrypt("", fernet) is None

    def test_decrypt_with_wrong_key_raises(self, fernet):
        token = encrypt("secret", fernet)
        with pytest.raises(ValueError, match="Decryption failed"):
            decrypt(token, Fernet(Fernet.generate_key()))

    def test_missing_key_raises(self):
        with pytest.raises(ValueError, match="ENCRYPTION_KEY"):
            get_cipher("")


@pytest.mark.medium
class TestParseErrorPayload:
    def test_google_error(self):
        response = httpx.Response(403, json={"error": {
            "code": 403, "message": "Forbidden", "errors": [{"reason": "forbidden"}]
        }})
        assert parse_error_payload(response)[:2] == ("forbidden", "Forbidden")

    def test_oauth_error(self):
        response = httpx.Response(400, json={"error": "invalid_grant", "error_description": "Bad token"})
        assert parse_error_payload(response)[:2] == ("invalid_grant", "Bad token")

    def test_plain_text_fallback(self):
        response = httpx.Response(502, text="Bad Gateway")
        code, message, payload = parse_error_payload(response)
        assert code is None
        assert message == "Bad Gateway"

    def test_empty_body(self):
        assert parse_error_payload(httpx.Response(500))[1] == "HTTP 500"
