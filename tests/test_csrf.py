"""
End-to-end CSRF behaviour of the demo app:
- Login form: checked against the double-submit cookie, which is single-use.
- Correct token → 303 with a session; wrong token or tampered cookie → 403.
- Missing cookie → 404 (forward); missing form field → 422.
- Header check and logout: checked against the session's own CSRF token.
"""

import re

import pytest

from src.csrf_guard.cookie import DOUBLE_SUBMIT_CSRF_TOKEN_COOKIE_NAME
from src.csrf_guard.header import CSRF_HEADER_NAME
from src.csrf_guard.proof import CsrfCheckProof
from src.demo_app.sessions import SESSION_COOKIE, hash_session_id

COOKIE = DOUBLE_SUBMIT_CSRF_TOKEN_COOKIE_NAME

_FORM_TOKEN_RE = re.compile(r'name="csrf_token" value="([^"]+)"')
_META_TOKEN_RE = re.compile(r'<meta name="csrf-token" content="([^"]+)">')

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _fetch_login_token(client) -> str:
    r = client.get("/")
    assert r.status_code == 200
    assert "Log in" in r.text
    match = _FORM_TOKEN_RE.search(r.text)
    assert match is not None
    return match.group(1)


def _login(client, name: str = "Alice"):
    token = _fetch_login_token(client)
    return client.post("/", data={"name": name, "csrf_token": token}, follow_redirects=False)


def _session_token(client) -> str:
    r = client.get("/")
    assert r.status_code == 200
    match = _META_TOKEN_RE.search(r.text)
    assert match is not None
    return match.group(1)


# ---------------------------------------------------------------------------
# Login form (double-submit cookie)
# ---------------------------------------------------------------------------


def test_login_page_sets_double_submit_cookie(client):
    r = client.get("/")
    assert r.status_code == 200
    headers = [h for h in r.headers.get_list("set-cookie") if h.startswith(COOKIE)]
    assert len(headers) == 1
    token = _FORM_TOKEN_RE.search(r.text).group(1)
    # The cookie holds a signed value, never the bare token.
    assert token not in headers[0]


def test_login_works_with_correct_token(client):
    r = _login(client)
    assert r.status_code == 303
    assert r.headers["location"] == "/"
    assert r.cookies.get(SESSION_COOKIE) is not None

    page = client.get("/")
    assert "Hello, Alice!" in page.text
    assert "You passed the right csrf token when logging in." in page.text


def test_login_fails_with_incorrect_token(client):
    _fetch_login_token(client)
    r = client.post("/", data={"name": "Alice", "csrf_token": "i_am_wrong"})
    assert r.status_code == 403
    assert client.cookies.get(SESSION_COOKIE) is None


def test_login_fails_with_tampered_cookie(client, plant_csrf_cookie):
    token = _fetch_login_token(client)
    client.cookies.clear()
    plant_csrf_cookie(client, "i_am_wrong")
    r = client.post("/", data={"name": "Alice", "csrf_token": token})
    assert r.status_code == 403


def test_login_forwards_without_cookie(client):
    token = _fetch_login_token(client)
    client.cookies.clear()
    r = client.post("/", data={"name": "Alice", "csrf_token": token})
    assert r.status_code == 404


def test_login_forwards_with_unsigned_cookie(client, plant_csrf_cookie):
    plant_csrf_cookie(client, "abc123", signed=False)
    r = client.post("/", data={"name": "Alice", "csrf_token": "abc123"})
    assert r.status_code == 404


def test_login_without_token_field_is_unprocessable(client):
    _fetch_login_token(client)
    r = client.post("/", data={"name": "Alice"})
    assert r.status_code == 422


def test_login_with_blank_name_is_unprocessable(client):
    token = _fetch_login_token(client)
    r = client.post("/", data={"name": "   ", "csrf_token": token})
    assert r.status_code == 422
    assert token not in r.text


def test_submitting_a_known_token_creates_a_session_once(client, plant_csrf_cookie, session_manager):
    plant_csrf_cookie(client, "abc123")
    form = {"name": "Alice", "csrf_token": "abc123"}

    r = client.post("/", data=form, follow_redirects=False)
    assert r.status_code == 303
    assert r.cookies.get(SESSION_COOKIE) is not None

    # The cookie was consumed by the first submit.
    assert client.cookies.get(COOKIE) is None
    assert client.post("/", data=form, follow_redirects=False).status_code == 404


def test_token_cannot_be_replayed_after_success(client):
    token = _fetch_login_token(client)
    assert client.post("/", data={"name": "Alice", "csrf_token": token}, follow_redirects=False).status_code == 303
    client.cookies.delete(SESSION_COOKIE)
    r = client.post("/", data={"name": "Alice", "csrf_token": token}, follow_redirects=False)
    assert r.status_code == 404


def test_token_is_consumed_by_a_failed_attempt(client):
    token = _fetch_login_token(client)
    r = client.post("/", data={"name": "Alice", "csrf_token": "i_am_wrong"})
    assert r.status_code == 403
    deletions = [h for h in r.headers.get_list("set-cookie") if h.startswith(COOKIE)]
    assert len(deletions) == 1 and "max-age=0" in deletions[0].lower()

    r = client.post("/", data={"name": "Alice", "csrf_token": token})
    assert r.status_code == 404


# ---------------------------------------------------------------------------
# Header check (session token)
# ---------------------------------------------------------------------------


def test_header_works_with_session_token(client):
    _login(client)
    token = _session_token(client)
    r = client.get("/header", headers={CSRF_HEADER_NAME: token})
    assert r.status_code == 200
    assert r.text == "You successfully passed the right CSRF token, congrats!"


def test_header_session_token_is_reusable(client):
    _login(client)
    token = _session_token(client)
    for _ in range(3):
        assert client.get("/header", headers={CSRF_HEADER_NAME: token}).status_code == 200


@pytest.mark.parametrize("headers", [{CSRF_HEADER_NAME: "i_am_wrong"}, {}])
def test_header_fails_with_wrong_or_absent_token(client, headers):
    _login(client)
    r = client.get("/header", headers=headers)
    assert r.status_code == 403


def test_header_forwards_without_session(client):
    r = client.get("/header", headers={CSRF_HEADER_NAME: "anything"})
    assert r.status_code == 404


def test_bearer_header_takes_precedence_over_cookie(client, session_manager):
    _login(client, "Alice")
    alice_token = _session_token(client)
    bob_id, bob = session_manager.create_session("Bob")
    bearer = {"Authorization": f"Bearer {bob_id}"}

    assert client.get("/header", headers={**bearer, CSRF_HEADER_NAME: bob.session_csrf_token}).status_code == 200
    assert client.get("/header", headers={**bearer, CSRF_HEADER_NAME: alice_token}).status_code == 403


# ---------------------------------------------------------------------------
# Logout (session token in a form, guarded by the session)
# ---------------------------------------------------------------------------


def test_logout_needs_the_session_token(client):
    login_token = _fetch_login_token(client)
    assert client.post("/", data={"name": "Alice", "csrf_token": login_token}, follow_redirects=False).status_code == 303

    # The double-submit token is not the session's token.
    r = client.post("/logout", data={"csrf_token": login_token}, follow_redirects=False)
    assert r.status_code == 403
    assert "Hello, Alice!" in client.get("/").text

    r = client.post("/logout", data={"csrf_token": _session_token(client)}, follow_redirects=False)
    assert r.status_code == 303
    assert client.cookies.get(SESSION_COOKIE) is None
    assert "Log in" in client.get("/").text


def test_logout_without_session_forwards(client):
    r = client.post("/logout", data={"csrf_token": "anything"}, follow_redirects=False)
    assert r.status_code == 404


def test_api_logout_with_header(client, session_manager):
    session_id, session = session_manager.create_session("Carol")
    auth = {"Authorization": f"Bearer {session_id}"}

    r = client.post("/api/logout", headers=auth)
    assert r.status_code == 403
    assert session_manager.fetch_session(hash_session_id(session_id)) is not None

    r = client.post("/api/logout", headers={**auth, CSRF_HEADER_NAME: session.session_csrf_token})
    assert r.status_code == 200
    assert r.json() == {"logged_out": "Carol"}
    assert session_manager.fetch_session(hash_session_id(session_id)) is None


def test_logout_requires_a_proof(session_manager):
    _, session = session_manager.create_session("Dave")
    with pytest.raises(TypeError):
        session_manager.logout("trust me", session.session_id_hash)
    session_manager.logout(CsrfCheckProof.default(), session.session_id_hash)
    assert session_manager.fetch_session(session.session_id_hash) is None
