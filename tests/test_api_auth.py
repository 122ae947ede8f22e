"""
End-to-end pairing scenarios through the v1 REST API.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

from conftest import pair, wait_until


def request_code(client, app_name="remote"):
    return client.post("/api/v1/auth/requestcode", json={"appName": app_name})


def request_token(client, code, app_name="remote"):
    return client.post("/api/v1/auth/request", json={"appName": app_name, "code": code})


def test_request_code(client):
    resp = request_code(client)
    assert resp.status_code == 200
    assert len(resp.json()["code"]) == 4


def test_second_code_for_same_app_times_out(client):
    request_code(client)
    resp = request_code(client)
    assert resp.status_code == 504
    assert resp.json() == {"error": "AUTHORIZATION_TIMEOUT"}


def test_gate_closed_rejects_authorization(client, surface):
    code = request_code(client).json()["code"]

    resp = request_token(client, code)

    assert resp.status_code == 403
    assert resp.json() == {"error": "AUTHORIZATION_DISABLED"}
    assert surface.shown == []


def test_approved_pairing_returns_working_token(client, runtime, surface):
    token = pair(client, "remote")

    assert surface.shown[0][0] == "remote"
    assert client.get("/api/v1/state", headers={"Authorization": f"Bearer {token}"}).status_code == 200
    # single-use gate
    assert runtime.gate.is_enabled() is False


def test_denied_pairing_and_code_single_use(client, runtime, surface):
    surface.decision = False
    client.post("/operator/pairing-gate/enable")
    code = request_code(client).json()["code"]

    resp = request_token(client, code)
    assert resp.status_code == 403
    assert resp.json() == {"error": "AUTHORIZATION_DENIED"}
    assert runtime.gate.is_enabled() is False

    # even with the gate armed again the consumed code is refused
    client.post("/operator/pairing-gate/enable")
    resp = request_token(client, code)
    assert resp.status_code == 400
    assert resp.json() == {"error": "AUTHORIZATION_INVALID"}


def test_wrong_code_consumes_issued_code(client, surface):
    client.post("/operator/pairing-gate/enable")
    code = request_code(client).json()["code"]
    wrong = "0000" if code != "0000" else "1111"

    assert request_token(client, wrong).json() == {"error": "AUTHORIZATION_INVALID"}
    assert request_token(client, code).json() == {"error": "AUTHORIZATION_INVALID"}
    assert surface.shown == []


def test_consent_timeout_denies_and_consumes_gate(client, runtime, surface):
    surface.decision = None
    runtime.consent.timeout_s = 0.2
    client.post("/operator/pairing-gate/enable")
    code = request_code(client).json()["code"]

    resp = request_token(client, code)

    assert resp.status_code == 403
    assert resp.json() == {"error": "AUTHORIZATION_DENIED"}
    assert client.get("/operator/tokens").json() == {"apps": []}
    assert runtime.gate.is_enabled() is False
    assert surface.closed


def test_auth_routes_rate_limited(client):
    for i in range(5):
        request_code(client, app_name=f"app-{i}")
    resp = request_code(client, app_name="app-6")

    assert resp.status_code == 429
    assert resp.json() == {"error": "RATE_LIMITED"}
    assert "retry-after" in resp.headers


def test_invalid_body_is_structured(client):
    resp = client.post("/api/v1/auth/requestcode", json={})
    assert resp.status_code == 400
    assert resp.json()["error"] == "INVALID_REQUEST"


def test_operator_approves_pending_prompt(client, runtime, surface):
    surface.decision = None
    client.post("/operator/pairing-gate/enable")
    code = request_code(client).json()["code"]

    with ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(request_token, client, code)
        assert wait_until(lambda: len(client.get("/operator/consent").json()) == 1)

        prompt = client.get("/operator/consent").json()[0]
        assert prompt["appName"] == "remote"
        assert prompt["code"] == code

        assert client.post(f"/operator/consent/{prompt['id']}/approve").json() == {"ok": True}
        resp = future.result(timeout=5)

    assert resp.status_code == 200
    assert client.get("/operator/tokens").json() == {"apps": ["remote"]}
    assert client.get("/operator/consent").json() == []


def test_operator_unknown_prompt_is_404(client):
    assert client.post("/operator/consent/missing/approve").status_code == 404


def test_resume_point_empty(client):
    assert client.get("/operator/resume-point").json() == {
        "lastUrl": None,
        "lastVideoId": None,
        "lastPlaylistId": None,
    }
