"""Tests for OAuth callback normalization."""

from outreach.services.oauth_callback import (
    CallbackParams,
    normalize_callback,
    parse_fragment,
    parse_query,
)

CALLBACK = "http://localhost:3000/auth/gmail-callback"


def test_parse_query_reads_code_and_state():
    params = parse_query("?code=4%2F0Ab&state=abc.def&scope=gmail.send")

    assert params == CallbackParams(code="4/0Ab", state="abc.def")


def test_parse_query_reads_provider_error():
    params = parse_query("error=access_denied&state=s1")

    assert params.error == "access_denied"
    assert params.code is None
    assert params.state == "s1"


def test_parse_fragment_reads_direct_access_token():
    params = parse_fragment("#access_token=ya29.tok&token_type=Bearer&expires_in=3599&state=s1")

    assert params.access_token == "ya29.tok"
    assert params.expires_in == 3599
    assert params.state == "s1"
    assert params.code is None


def test_blank_values_are_treated_as_missing():
    params = parse_query("code=&state=%20")

    assert params.code is None
    assert params.state is None
    assert params.is_empty


def test_normalize_prefers_query_string():
    params = normalize_callback(f"{CALLBACK}?code=c1&state=s1#code=c2&state=s2")

    assert params.code == "c1"
    assert params.state == "s1"


def test_normalize_falls_back_to_fragment():
    params = normalize_callback(f"{CALLBACK}#code=c2&state=s2")

    assert params.code == "c2"
    assert params.state == "s2"


def test_normalize_with_nothing_returns_empty_params():
    assert normalize_callback(CALLBACK).is_empty
