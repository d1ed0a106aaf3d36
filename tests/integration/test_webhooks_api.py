import uuid

from conftest import (
    APP_SECRET,
    TENANT,
    VERIFY_TOKEN,
    settle,
    signed,
    wa_button_reply,
    wa_status,
    wa_webhook,
)

from src.shared.utils.crypto import signature_header, verify_signature_header

H = {"X-Tenant-Id": TENANT}
PARTNER_SECRET = "partner-shared-secret"


def _register(client, events, url="https://partner.example/hooks", secret=PARTNER_SECRET, headers=None):
    return client.post(
        "/v1/webhooks/partners",
        json={"url": url, "events": events, "secret": secret},
        headers={**H, **(headers or {})},
    )


def _post_webhook(client, payload, secret=APP_SECRET, header="X-Hub-Signature-256"):
    body, signature = signed(payload, secret)
    return client.post(
        "/v1/webhooks/whatsapp",
        content=body,
        headers={"Content-Type": "application/json", header: signature},
    )


# ---------- WhatsApp handshake ----------

def test_verification_handshake(client):
    params = {"hub.mode": "subscribe", "hub.verify_token": VERIFY_TOKEN, "hub.challenge": "1158201444"}
    response = client.get("/v1/webhooks/whatsapp", params=params)
    assert response.status_code == 200
    assert response.text == "1158201444"


def test_verification_with_wrong_token_is_forbidden(client):
    params = {"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "1"}
    response = client.get("/v1/webhooks/whatsapp", params=params)
    assert response.status_code == 403
    assert response.json()["code"] == "forbidden"


# ---------- WhatsApp events ----------

def test_bad_signature_is_rejected(client):
    response = _post_webhook(client, wa_webhook(statuses=[]), secret="not-the-app-secret")
    assert response.status_code == 401
    assert response.json()["code"] == "unauthorized"


def test_status_update_reaches_message_and_partner(client, partner_endpoint):
    assert _register(client, ["message.delivered"]).status_code == 201
    message_id = client.post(
        "/v1/messages/whatsapp/text", json={"to": "+5511987654321", "text": "hi"}, headers=H
    ).json()["message_id"]
    settle(client)

    response = _post_webhook(client, wa_webhook(statuses=[wa_status("wamid.1", "delivered")]))
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}

    settle(client)
    assert client.get(f"/v1/messages/{message_id}", headers=H).json()["state"] == "delivered"

    assert len(partner_endpoint.requests) == 1
    request = partner_endpoint.requests[0]
    assert verify_signature_header(PARTNER_SECRET, request.content, request.headers["X-Signature-256"])
    delivered = partner_endpoint.bodies()[0]
    assert delivered["event"] == "message.delivered"
    assert delivered["data"]["message_id"] == message_id


def test_alternate_signature_header_is_accepted(client):
    response = _post_webhook(client, wa_webhook(statuses=[]), header="X-Signature-256")
    assert response.status_code == 200


def test_redelivered_inbound_message_is_stored_once(client, partner_endpoint):
    _register(client, ["button.clicked"])
    payload = wa_webhook(messages=[wa_button_reply("wamid.in.1")])

    assert _post_webhook(client, payload).status_code == 200
    assert _post_webhook(client, payload).status_code == 200
    settle(client)

    assert len(client.app.state.container.messages) == 1
    assert [b["event"] for b in partner_endpoint.bodies()] == ["button.clicked"]


def test_invalid_json_is_rejected(client):
    body = b"not-json"
    response = client.post(
        "/v1/webhooks/whatsapp",
        content=body,
        headers={"X-Hub-Signature-256": signature_header(APP_SECRET, body)},
    )
    assert response.status_code == 400


# ---------- partner subscriptions ----------

def test_register_list_and_deactivate(client):
    created = _register(client, ["message.read", "message.delivered"])
    assert created.status_code == 201
    subscription = created.json()
    assert subscription["events"] == ["message.delivered", "message.read"]
    assert subscription["active"] is True
    assert "secret" not in subscription

    listed = client.get("/v1/webhooks/partners", headers=H).json()["items"]
    assert [s["id"] for s in listed] == [subscription["id"]]
    assert client.get("/v1/webhooks/partners", headers={"X-Tenant-Id": "other"}).json()["items"] == []

    deleted = client.delete(f"/v1/webhooks/partners/{subscription['id']}", headers=H)
    assert deleted.status_code == 204
    assert "X-RateLimit-Limit" in deleted.headers
    assert client.get("/v1/webhooks/partners", headers=H).json()["items"][0]["active"] is False

    assert client.delete(f"/v1/webhooks/partners/{subscription['id']}", headers=H).status_code == 404


def test_unknown_events_are_listed_in_the_error(client):
    response = _register(client, ["message.read", "message.exploded"])
    assert response.status_code == 400
    details = response.json()["details"]
    assert details["invalid_events"] == ["message.exploded"]
    assert "order.completed" in details["valid_events"]


def test_registration_is_idempotent(client):
    key = str(uuid.uuid4())
    first = _register(client, ["order.updated"], headers={"Idempotency-Key": key})
    second = _register(client, ["order.updated"], headers={"Idempotency-Key": key})

    assert first.status_code == second.status_code == 201
    assert first.json()["id"] == second.json()["id"]
    assert len(client.get("/v1/webhooks/partners", headers=H).json()["items"]) == 1
