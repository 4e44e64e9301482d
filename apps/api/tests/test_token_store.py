"""Tests for Gmail credential storage."""

from outreach.db.models import GmailCredential
from outreach.services import token_store


def test_save_encrypts_tokens_at_rest(db, user_id):
    credential = token_store.save_credential(
        db, user_id, access_token="access-1", refresh_token="refresh-1", expires_in=3600
    )

    assert credential.access_token_encrypted != "access-1"
    assert credential.refresh_token_encrypted != "refresh-1"
    assert credential.token_expires_at is not None

    tokens = token_store.get_tokens(db, user_id)
    assert tokens.access_token == "access-1"
    assert tokens.refresh_token == "refresh-1"


def test_save_replaces_whole_record(db, user_id):
    token_store.save_credential(
        db,
        user_id,
        access_token="access-1",
        refresh_token="refresh-1",
        expires_in=3600,
        account_email="old@theitbc.com",
    )
    token_store.save_credential(db, user_id, access_token="access-2", expires_in=3600)

    assert db.query(GmailCredential).filter(GmailCredential.user_id == user_id).count() == 1
    tokens = token_store.get_tokens(db, user_id)
    assert tokens.access_token == "access-2"
    assert tokens.refresh_token is None
    assert tokens.account_email is None


def test_get_tokens_for_unknown_user_is_none(db, user_id):
    assert token_store.get_tokens(db, user_id) is None


def test_delete_credential(db, user_id):
    token_store.save_credential(db, user_id, access_token="access-1")

    assert token_store.delete_credential(db, user_id) is True
    assert token_store.get_credential(db, user_id) is None
    assert token_store.delete_credential(db, user_id) is False


def test_concurrent_first_save_overwrites_existing_row(db, user_id, monkeypatch):
    token_store.save_credential(db, user_id, access_token="access-1", refresh_token="refresh-1")

    # Second connect looked before the first committed and saw no credential
    real_get_credential = token_store.get_credential
    calls = []

    def stale_get_credential(*args):
        calls.append(args)
        return None if len(calls) == 1 else real_get_credential(*args)

    monkeypatch.setattr(token_store, "get_credential", stale_get_credential)

    token_store.save_credential(db, user_id, access_token="access-2", refresh_token="refresh-2")

    monkeypatch.undo()
    assert db.query(GmailCredential).filter(GmailCredential.user_id == user_id).count() == 1
    tokens = token_store.get_tokens(db, user_id)
    assert tokens.access_token == "access-2"
    assert tokens.refresh_token == "refresh-2"
