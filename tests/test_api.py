"""
REST API tests over httpx ASGITransport.
"""

import pytest

from test_scenarios import fund_tenant, open_market

from conftest import TENANT, TOKEN


async def create_lease(client, orchestrator):
    provider, order, _ = await open_market(orchestrator)
    response = await client.post(
        "/v1/leases",
        json={
            "order_id": order.order_id,
            "provider_id": provider.provider_id,
            "start_block": 100,
            "end_block": 820,
            "tenant_address": TENANT,
        },
    )
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/v1/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_lease_lifecycle(client, orchestrator):
    lease = await create_lease(client, orchestrator)
    lease_id = lease["lease_id"]
    assert lease["state"] == "Active"
    assert lease["container_id"]

    response = await client.get(f"/v1/leases/{lease_id}")
    assert response.json()["lease_id"] == lease_id

    response = await client.get(f"/v1/providers/{lease['provider_id']}/leases")
    assert [l["lease_id"] for l in response.json()] == [lease_id]

    response = await client.get(f"/v1/leases/{lease_id}/health")
    assert response.status_code == 200
    assert response.json()["is_healthy"] is True

    response = await client.get(f"/v1/leases/{lease_id}/logs")
    assert "lease-" in response.json()["logs"]

    response = await client.post(f"/v1/leases/{lease_id}/complete")
    assert response.status_code == 200
    assert response.json()["state"] == "Completed"

    response = await client.post(f"/v1/leases/{lease_id}/cancel")
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "INVALID_STATE_TRANSITION"

    response = await client.get(f"/v1/deployments/{lease_id}")
    assert response.json()["status"] == "stopped"


@pytest.mark.asyncio
async def test_not_found_maps_to_404(client):
    response = await client.get("/v1/leases/99")

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "LEASE_NOT_FOUND"

    response = await client.post("/v1/deployments/99/stop")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_validation_maps_to_400(client):
    response = await client.post(
        "/v1/leases",
        json={
            "order_id": 1,
            "provider_id": 1,
            "start_block": 100,
            "end_block": 50,
            "tenant_address": TENANT,
        },
    )

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_escrow_endpoints(client, orchestrator):
    body = {"token": TOKEN, "tenant_address": TENANT, "amount": "1000", "signer_secret": "STENANT"}

    response = await client.post("/v1/escrow/deposits", json=body)
    assert response.status_code == 201
    assert response.json()["kind"] == "deposit"

    response = await client.post("/v1/escrow/locks", json={**body, "amount": "5000"})
    assert response.status_code == 502
    assert response.json()["detail"]["code"] == "LOCK_FAILED"

    response = await client.get(f"/v1/escrow/tenants/{TENANT}/balance", params={"token": TOKEN})
    assert response.json() == {"locked": "0", "unlocked": "1000"}

    response = await client.get(f"/v1/tenants/{TENANT}/payments")
    assert len(response.json()) == 1

    payment_id = response.json()[0]["payment_id"]
    response = await client.get(f"/v1/payments/{payment_id}")
    assert response.json()["amount"] == "1000"


@pytest.mark.asyncio
async def test_indeterminate_maps_to_504(client, ledger):
    ledger.never_final.add("deposit")

    response = await client.post(
        "/v1/escrow/deposits",
        json={"token": TOKEN, "tenant_address": TENANT, "amount": "10", "signer_secret": "S"},
    )

    assert response.status_code == 504
    assert response.json()["detail"]["indeterminate"] is True


@pytest.mark.asyncio
async def test_lease_payment_and_listing(client, orchestrator):
    lease = await create_lease(client, orchestrator)
    await fund_tenant(orchestrator)

    response = await client.post(
        f"/v1/leases/{lease['lease_id']}/payments",
        json={"token": TOKEN, "amount": "250", "signer_secret": "STENANT"},
    )
    assert response.status_code == 201
    assert response.json()["lease_id"] == lease["lease_id"]

    response = await client.get(f"/v1/leases/{lease['lease_id']}/payments")
    assert [p["amount"] for p in response.json()] == ["250"]


@pytest.mark.asyncio
async def test_accept_bid_endpoint(client, orchestrator):
    _, _, bid = await open_market(orchestrator)

    response = await client.post(f"/v1/bids/{bid.bid_id}/accept")

    assert response.status_code == 201
    assert response.json()["start_block"] == 1000


@pytest.mark.asyncio
async def test_market_flow_over_http(client, ledger):
    response = await client.post(
        "/v1/providers",
        json={"address": "GHTTPPROVIDER", "hostname": "edge.example.com", "port": 8080},
    )
    assert response.status_code == 201
    provider_id = response.json()["provider_id"]

    response = await client.put(
        f"/v1/providers/{provider_id}/status", json={"status": "Active"}
    )
    assert response.json()["status"] == "Active"
    response = await client.put(
        f"/v1/providers/{provider_id}/trust-level", json={"trust_level": "Two"}
    )
    assert response.json()["trust_level"] == "Two"
    response = await client.put(
        f"/v1/providers/{provider_id}/resources",
        json={"resources": {"cpu": 4, "memory": 8192, "storage": 100}},
    )
    assert response.json()["available_resources"]["cpu"] == 4
    response = await client.get("/v1/providers/by-address/GHTTPPROVIDER")
    assert response.json()["provider_id"] == provider_id
    response = await client.get("/v1/providers")
    assert [p["provider_id"] for p in response.json()] == [provider_id]

    response = await client.post(
        "/v1/orders",
        json={
            "tenant_address": TENANT,
            "max_price": "500",
            "spec": {"image": "nginx:latest"},
            "trust_levels": ["Five"],
            "duration_blocks": 360,
        },
    )
    assert response.status_code == 201
    order_id = response.json()["order_id"]
    response = await client.get(f"/v1/orders/{order_id}")
    assert response.json()["spec"]["image"] == "nginx:latest"

    response = await client.post(
        f"/v1/orders/{order_id}/bids", json={"provider_id": provider_id, "price": "450"}
    )
    assert response.status_code == 201
    bid_id = response.json()["bid_id"]
    response = await client.get(f"/v1/orders/{order_id}/bids")
    assert [b["bid_id"] for b in response.json()] == [bid_id]

    response = await client.post(f"/v1/bids/{bid_id}/accept")
    assert response.status_code == 201
    assert response.json()["end_block"] == 1360
    response = await client.get(f"/v1/bids/{bid_id}")
    assert response.json()["state"] == "Matched"

    response = await client.put(f"/v1/orders/{order_id}/close")
    assert response.json()["state"] == "Closed"
    assert ledger.orders[order_id]["state"] == ["Closed"]


@pytest.mark.asyncio
async def test_market_routes_validate_input(client):
    response = await client.post(
        "/v1/orders",
        json={
            "tenant_address": TENANT,
            "max_price": "12.5",
            "spec": {"image": "nginx:latest"},
            "trust_levels": ["Five"],
            "duration_blocks": 10,
        },
    )
    assert response.status_code == 400

    response = await client.put("/v1/providers/1/status", json={"status": "Retired"})
    assert response.status_code == 422

    response = await client.get("/v1/providers/9")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_metrics_endpoint(client, orchestrator):
    await create_lease(client, orchestrator)

    response = await client.get("/v1/metrics")

    assert response.status_code == 200
    assert response.json()["counters"]["leases.created"] == 1
    print("OK. Metrics are exposed over HTTP")
