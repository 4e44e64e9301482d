"""Tests for the Gmail integration endpoints."""

import time
import uuid
from http.cookies import SimpleCookie
from urllib.parse import parse_qs, urlparse

import pytest
from httpx import AsyncClient

from outreach.core.security import create_oauth_state
from outreach.services import gmail_service, google_oauth, token_store
from outreach.services.connection_attempt import ATTEMPT_TIME_KEY, IN_PROGRESS_KEY
from outreach.services.gmail_service import GmailSendResult


def _set_cookies(response) -> SimpleCookie:
    cookie = SimpleCookie()
    for header in response.headers.get_list("set-cookie"):
        cookie.load(header)
    return cookie


@pytest.mark.asyncio
async def test_requires_authentication(client: AsyncClient):
    response = await client.get("/integrations/gmail/status")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_rejects_forged_session(client: AsyncClient):
    response = await client.get(
        "/integrations/gmail/status", headers={"Authorization": "Bearer not-a-jwt"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


# =============================================================================
# Connect / exchange
# =============================================================================


@pytest.mark.asyncio
async def test_connect_returns_auth_url_and_marks_attempt(authed_client: AsyncClient):
    response = await authed_client.get("/integrations/gmail/connect")
    assert response.status_code == 200

    qs = parse_qs(urlparse(response.json()["auth_url"]).query)
    assert qs["access_type"] == ["offline"]
    assert "state" in qs

    cookie = _set_cookies(response)
    assert cookie[IN_PROGRESS_KEY].value == "true"
    assert cookie[IN_PROGRESS_KEY]["path"] == "/integrations/gmail"
    assert cookie[IN_PROGRESS_KEY]["httponly"]
    assert float(cookie[ATTEMPT_TIME_KEY].value) > 0


@pytest.mark.asyncio
async def test_connect_while_attempt_in_progress(authed_client: AsyncClient):
    response = await authed_client.get(
        "/integrations/gmail/connect",
        headers={"Cookie": f"{IN_PROGRESS_KEY}=true; {ATTEMPT_TIME_KEY}={time.time()}"},
    )

    assert response.status_code == 409
    assert response.json()["remediation"] == "wait"


@pytest.mark.asyncio
async def test_connect_after_stale_attempt(authed_client: AsyncClient):
    response = await authed_client.get(
        "/integrations/gmail/connect",
        headers={"Cookie": f"{IN_PROGRESS_KEY}=true; {ATTEMPT_TIME_KEY}={time.time() - 600}"},
    )

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_connect_with_unregistered_redirect_uri(authed_client: AsyncClient):
    response = await authed_client.get(
        "/integrations/gmail/connect",
        params={"redirect_uri": "https://elsewhere.example.com/cb"},
    )

    assert response.status_code == 400
    data = response.json()
    assert data["error"] == "RedirectURIMismatchError"
    assert data["details"]["attempted_uri"] == "https://elsewhere.example.com/cb"


@pytest.mark.asyncio
async def test_exchange_from_callback_url(authed_client: AsyncClient, db, user_id, monkeypatch):
    async def fake_exchange(code, redirect_uri):
        assert code == "auth-code"
        return {"access_token": "access", "refresh_token": "refresh", "expires_in": 3600}

    async def fake_email(access_token):
        return "recruiter@theitbc.com"

    monkeypatch.setattr(google_oauth, "exchange_code", fake_exchange)
    monkeypatch.setattr(google_oauth, "get_user_email", fake_email)

    state = create_oauth_state(user_id)
    response = await authed_client.post(
        "/integrations/gmail/exchange",
        json={"callback_url": f"http://localhost:3000/auth/gmail-callback?code=auth-code&state={state}"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["connected"] is True
    assert data["expired"] is False
    assert data["has_refresh_token"] is True
    assert token_store.get_tokens(db, user_id).account_email == "recruiter@theitbc.com"


@pytest.mark.asyncio
async def test_exchange_with_foreign_state(authed_client: AsyncClient, db, user_id):
    response = await authed_client.post(
        "/integrations/gmail/exchange",
        json={"code": "auth-code", "state": create_oauth_state(uuid.uuid4())},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "InvalidStateError"
    assert token_store.get_credential(db, user_id) is None


@pytest.mark.asyncio
async def test_exchange_missing_parameters(authed_client: AsyncClient):
    response = await authed_client.post(
        "/integrations/gmail/exchange",
        json={"callback_url": "http://localhost:3000/auth/gmail-callback"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "MissingParametersError"


# =============================================================================
# Status / refresh / disconnect
# =============================================================================


@pytest.mark.asyncio
async def test_status_connected(authed_client: AsyncClient, make_credential):
    make_credential(expires_in_seconds=-60)

    response = await authed_client.get("/integrations/gmail/status")

    assert response.status_code == 200
    assert response.json() == {
        "connected": True,
        "expired": True,
        "token_present": True,
        "needs_refresh": True,
        "has_refresh_token": True,
    }


@pytest.mark.asyncio
async def test_refresh_when_not_connected(authed_client: AsyncClient):
    response = await authed_client.post("/integrations/gmail/refresh")

    assert response.status_code == 200
    assert response.json() == {"success": False}


@pytest.mark.asyncio
async def test_disconnect(authed_client: AsyncClient, db, user_id, make_credential, monkeypatch):
    make_credential()

    async def fake_revoke(token):
        return None

    monkeypatch.setattr(google_oauth, "revoke_token", fake_revoke)

    response = await authed_client.delete("/integrations/gmail")

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Gmail disconnected"}
    assert token_store.get_credential(db, user_id) is None

    again = await authed_client.delete("/integrations/gmail")
    assert again.json()["message"] == "Gmail was not connected"


# =============================================================================
# Send / compose link
# =============================================================================


@pytest.mark.asyncio
async def test_send_validation_error(authed_client: AsyncClient):
    response = await authed_client.post(
        "/integrations/gmail/send", json={"to": "a@x.com", "body": ""}
    )

    assert response.status_code == 400
    assert response.json()["remediation"] == "fix_input"


@pytest.mark.asyncio
async def test_send_when_not_connected(authed_client: AsyncClient):
    response = await authed_client.post(
        "/integrations/gmail/send", json={"to": "a@x.com", "body": "hi"}
    )

    assert response.status_code == 409
    data = response.json()
    assert data["error"] == "NotConnectedError"
    assert data["remediation"] == "connect"


@pytest.mark.asyncio
async def test_send_success(authed_client: AsyncClient, make_credential, monkeypatch):
    make_credential()

    async def fake_send_message(db, user_id, **kwargs):
        return GmailSendResult("T1", "M1", "<r1@theitbc.com>")

    monkeypatch.setattr(gmail_service, "send_message", fake_send_message)

    response = await authed_client.post(
        "/integrations/gmail/send",
        json={
            "to": "jane@example.com",
            "body": "<p>Hello</p>",
            "job_id": str(uuid.uuid4()),
            "candidate_id": str(uuid.uuid4()),
        },
    )

    assert response.status_code == 200
    assert response.json() == {
        "thread_id": "T1",
        "message_id": "M1",
        "rfc_message_id": "<r1@theitbc.com>",
    }


@pytest.mark.asyncio
async def test_compose_link(authed_client: AsyncClient):
    response = await authed_client.post(
        "/integrations/gmail/compose-link",
        json={"to": "jane@example.com", "body": "Hello", "job_title": "Data Engineer"},
    )

    assert response.status_code == 200
    data = response.json()
    assert "su=ITBC%20Data%20Engineer" in data["url"]
    assert data["thread_search_url"].endswith("subject%3A%28ITBC%20Data%20Engineer%29")


@pytest.mark.asyncio
async def test_follow_up_with_returned_ids_replies_to_real_message_id(
    authed_client: AsyncClient, make_credential, monkeypatch
):
    make_credential()
    sent = []

    async def fake_send_message(db, user_id, **kwargs):
        sent.append(kwargs)
        return GmailSendResult("T1", f"M{len(sent)}", f"<r{len(sent)}@theitbc.com>")

    monkeypatch.setattr(gmail_service, "send_message", fake_send_message)
    context = {"job_id": str(uuid.uuid4()), "candidate_id": str(uuid.uuid4())}

    first = await authed_client.post(
        "/integrations/gmail/send", json={"to": "jane@example.com", "body": "Hello", **context}
    )
    returned = first.json()
    second = await authed_client.post(
        "/integrations/gmail/send",
        json={
            "to": "jane@example.com",
            "body": "Following up",
            "thread_id": returned["thread_id"],
            "message_id": returned["message_id"],
            **context,
        },
    )

    assert second.status_code == 200
    assert sent[1]["thread_id"] == "T1"
    assert sent[1]["in_reply_to"] == "<r1@theitbc.com>"
