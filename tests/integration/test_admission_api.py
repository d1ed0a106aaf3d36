import uuid

from conftest import TENANT

from src.platform.domain.entities.tenant import Tenant
from src.platform.infrastructure.tenant_limits import StaticTenantLimitsProvider

H = {"X-Tenant-Id": TENANT}
TO = "+5511987654321"


def _text(client, to=TO, key=None):
    headers = dict(H)
    if key:
        headers["Idempotency-Key"] = key
    return client.post("/v1/messages/whatsapp/text", json={"to": to, "text": "hi"}, headers=headers)


# ---------- rate limits ----------

def test_tenant_window_rejects_the_extra_request(make_client):
    client = make_client(rate_limit_max_requests=2)
    responses = [client.get("/v1/quotas", headers=H) for _ in range(3)]

    assert [r.status_code for r in responses] == [200, 200, 429]
    rejected = responses[-1]
    assert rejected.json()["code"] == "rate_limit_exceeded"
    assert 0 < int(rejected.headers["Retry-After"]) <= 60
    assert rejected.headers["X-RateLimit-Remaining"] == "0"
    assert responses[0].headers["X-RateLimit-Remaining"] == "1"


def test_recipient_window_is_per_number(make_client):
    client = make_client(recipient_rate_limit_max=1)
    assert _text(client).status_code == 202
    second = _text(client)
    assert second.status_code == 429
    assert second.json()["details"]["resource_class"] == "whatsapp"
    assert _text(client, to="+5511912345678").status_code == 202


# ---------- idempotency ----------

def test_idempotent_retry_replays_the_same_bytes(client):
    key = str(uuid.uuid4())
    first = _text(client, key=key)
    second = _text(client, key=key)

    assert first.status_code == second.status_code == 202
    assert second.content == first.content
    assert second.headers["Idempotent-Replayed"] == "true"
    assert "Idempotent-Replayed" not in first.headers
    assert len(client.app.state.container.messages) == 1


def test_replay_does_not_consume_quota(make_client):
    limits = StaticTenantLimitsProvider({TENANT: Tenant(id=TENANT, limits={"messages": 1})})
    client = make_client(container_kwargs={"limits": limits})
    key = str(uuid.uuid4())

    assert _text(client, key=key).status_code == 202
    assert _text(client, key=key).status_code == 202
    assert _text(client).status_code == 429


def test_non_uuid_key_is_rejected(client):
    response = _text(client, key="retry-1")
    assert response.status_code == 400
    assert response.json()["details"] == {"header": "Idempotency-Key"}


def test_in_flight_key_conflicts(client):
    key = str(uuid.uuid4())
    container = client.app.state.container
    client.portal.call(container.idempotency.begin, TENANT, key)

    response = _text(client, key=key)
    assert response.status_code == 409
    assert response.json()["code"] == "idempotency_conflict"


def test_failed_request_releases_the_key(make_client):
    limits = StaticTenantLimitsProvider({TENANT: Tenant(id=TENANT, limits={"messages": 0})})
    client = make_client(container_kwargs={"limits": limits})
    key = str(uuid.uuid4())

    assert _text(client, key=key).status_code == 429
    limits.put(Tenant(id=TENANT, limits={"messages": 5}))
    assert _text(client, key=key).status_code == 202


# ---------- quotas ----------

def test_plan_limit_and_quota_report(make_client):
    limits = StaticTenantLimitsProvider({TENANT: Tenant(id=TENANT, limits={"messages": 2})})
    client = make_client(container_kwargs={"limits": limits})

    assert [_text(client, to=f"+55119876543{i:02d}").status_code for i in range(3)] == [202, 202, 429]
    rejected = _text(client, to="+5511987654399")
    assert rejected.json()["code"] == "plan_limit_exceeded"
    assert int(rejected.headers["Retry-After"]) > 0

    report = client.get("/v1/quotas", headers=H).json()
    assert report["tenant_id"] == TENANT
    usage = {q["resource_type"]: q for q in report["quotas"]}
    assert usage["messages"]["used"] == 2
    assert usage["messages"]["limit"] == 2
    assert usage["messages"]["remaining"] == 0
    assert usage["plates"]["used"] == 0


def test_quota_report_validates_period(client):
    assert client.get("/v1/quotas", params={"period": "2025-13"}, headers=H).status_code == 400
    report = client.get("/v1/quotas", params={"period": "2020-01"}, headers=H).json()
    assert all(q["period"] == "2020-01" and q["used"] == 0 for q in report["quotas"])


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    checks = response.json()["checks"]
    assert checks["store"] == "ok"
    assert checks["dispatch_workers"] == "running"
