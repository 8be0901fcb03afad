from app.core.security import hash_password
from app.models.user_models import User


async def test_health(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


async def test_requests_without_token_are_rejected(client, world):
    response = await client.get(f"/orders/{world.order}/messages")
    assert response.status_code == 401
    assert response.json()["error"] == "unauthenticated"

    response = await client.get(f"/orders/{world.order}/messages", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401


async def test_login_me_logout(client, world, db):
    user = await db.get(User, world.owner)
    user.password_hash = hash_password("s3cret-pass")
    await db.commit()

    bad = await client.post("/auth/login", json={"email": "owner@example.com", "password": "nope"})
    assert bad.status_code == 401

    response = await client.post("/auth/login", json={"email": "OWNER@example.com", "password": "s3cret-pass"})
    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["role"] == "owner"
    headers = {"Authorization": f"Bearer {body['access_token']}"}

    me = await client.get("/auth/me", headers=headers)
    assert me.json()["email"] == "owner@example.com"

    assert (await client.post("/auth/logout", headers=headers)).status_code == 200
    assert (await client.get("/auth/me", headers=headers)).status_code == 401


async def test_negotiation_flow_over_http(client, world, headers_for, sink):
    vendor = await headers_for(world.vendor)
    owner = await headers_for(world.owner)

    response = await client.post(
        f"/orders/{world.order}/messages", json={"content": "Can you do 20 tonnes by Friday?"}, headers=owner
    )
    assert response.status_code == 201
    assert response.json()["data"]["message_type"] == "text"

    response = await client.post(
        f"/orders/{world.order}/quotation",
        json={"amount": 180000, "currency": "inr", "validUntil": "2030-01-01T00:00:00Z", "inResponseTo": None},
        headers=vendor,
    )
    assert response.status_code == 201
    quotation = response.json()["data"]
    assert quotation["message_type"] == "quotation"
    assert quotation["quotation"]["status"] == "pending"
    assert quotation["quotation"]["currency"] == "INR"

    response = await client.put(f"/orders/{world.order}/quotation/{quotation['id']}/accept", headers=owner)
    assert response.status_code == 200
    accepted = response.json()["data"]
    assert accepted["purchase_order"]["status"] == "accepted"
    assert accepted["purchase_order"]["negotiation"]["final_amount"] == 180000
    assert accepted["already_accepted"] is False

    response = await client.post(
        f"/orders/{world.order}/delivery-details",
        json={"trackingNumber": "TRK-1", "carrier": "DHL", "estimatedDeliveryDate": "2030-02-01T00:00:00Z"},
        headers=vendor,
    )
    assert response.status_code == 201
    details = response.json()["data"]
    assert details["invoice"]["total_amount"] == 180000
    assert details["invoice_message"]["invoice"]["invoice_number"] == details["invoice"]["invoice_number"]
    assert details["purchase_order"]["negotiation"]["chat_closed"] is True

    response = await client.put(
        f"/orders/{world.order}/delivery-status",
        json={"status": "in_transit", "expectedDeliveryDate": "2030-02-03T00:00:00Z"},
        headers=vendor,
    )
    assert response.status_code == 200
    tracking = response.json()["data"]["delivery_tracking"]
    assert tracking["status"] == "in_transit"
    assert tracking["expected_arrival"] == tracking["expected_delivery_date"]
    assert tracking["expected_arrival"].startswith("2030-02-03")

    response = await client.get("/vendor-invoices", headers=vendor)
    assert [i["purchase_order_id"] for i in response.json()["data"]] == [world.order]

    assert "quotationAccepted" in sink.names(f"order_{world.order}")

    employee = await headers_for(world.employee)
    response = await client.post(
        f"/orders/{world.order}/delivery",
        json={"deliveryDate": "2030-02-04T09:00:00Z", "items": [{"itemIndex": 0, "deliveredQuantity": 20}]},
        headers=employee,
    )
    assert response.status_code == 200
    received = response.json()["data"]
    assert received["status"] == "completed"
    assert received["items"][0]["delivery_status"] == "delivered"
    assert received["deliveries"][0]["received_by"] == world.employee

    response = await client.post(f"/orders/{world.order}/delivery", json={"items": []}, headers=owner)
    assert response.status_code == 422
    response = await client.post(
        f"/orders/{world.order}/delivery",
        json={"deliveryDate": "2030-02-04T09:00:00Z", "items": [{"itemIndex": 0, "deliveredQuantity": 1}]},
        headers=vendor,
    )
    assert response.status_code == 403


async def test_unread_count_route_is_not_an_order_id(client, world, headers_for):
    await client.post(
        f"/orders/{world.order}/messages",
        json={"content": "Hello"},
        headers=await headers_for(world.vendor),
    )
    owner = await headers_for(world.owner)

    response = await client.get("/orders/unread-count", headers=owner)
    assert response.status_code == 200
    assert response.json()["data"]["unread"] == 1

    response = await client.put(f"/orders/{world.order}/mark-read", headers=owner)
    assert response.json()["data"]["marked"] == 1
    response = await client.get("/orders/unread-count", headers=owner)
    assert response.json()["data"]["unread"] == 0


async def test_error_status_codes(client, world, headers_for):
    vendor = await headers_for(world.vendor)
    owner = await headers_for(world.owner)
    other_vendor = await headers_for(world.other_vendor)

    response = await client.get("/orders/9999/messages", headers=owner)
    assert response.status_code == 404
    assert response.json() == {"detail": "Purchase order not found", "error": "not_found"}

    response = await client.get(f"/orders/{world.order}/messages", headers=other_vendor)
    assert response.status_code == 403
    assert response.json()["error"] == "forbidden"

    # owners cannot quote
    response = await client.post(f"/orders/{world.order}/quotation", json={"amount": 10}, headers=owner)
    assert response.status_code == 403

    response = await client.post(f"/orders/{world.order}/quotation", json={"amount": -5}, headers=vendor)
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_state"

    response = await client.post(
        f"/orders/{world.order}/quotation", json={"amount": 10, "currency": "XYZ"}, headers=vendor
    )
    assert response.status_code == 422

    response = await client.post(f"/orders/{world.order}/messages", json={"content": "   "}, headers=vendor)
    assert response.status_code == 400


async def test_purchase_order_routes(client, world, headers_for):
    owner = await headers_for(world.owner)
    vendor = await headers_for(world.vendor)

    response = await client.post(
        "/orders",
        json={
            "project_id": world.project,
            "vendor_id": world.vendor,
            "title": "Sand",
            "items": [{"material_name": "River sand", "quantity": 12, "unit": "m3"}],
        },
        headers=owner,
    )
    assert response.status_code == 201
    order_id = response.json()["data"]["id"]

    response = await client.post("/orders", json={"project_id": world.project}, headers=owner)
    assert response.status_code == 422

    assert (await client.put(f"/orders/{order_id}/send", headers=owner)).json()["data"]["status"] == "sent"
    response = await client.put(f"/orders/{order_id}/acknowledge", headers=vendor)
    assert response.json()["data"]["status"] == "acknowledged"

    response = await client.put(f"/orders/{order_id}/cancel", json={"reason": "Wrong grade"}, headers=owner)
    assert response.json()["data"]["status"] == "cancelled"

    response = await client.get("/orders", headers=vendor)
    assert {o["id"] for o in response.json()["data"]} == {world.order, order_id}

    response = await client.get("/orders/delivery-overview", headers=owner)
    assert response.status_code == 200
    assert response.json()["data"]["total"] == 0

    response = await client.get(f"/orders/{order_id}/delivery-tracking", headers=vendor)
    assert response.json()["data"]["status"] == "not_started"


async def test_expired_and_foreign_tokens(client, world, db):
    from datetime import timedelta
    from jose import jwt
    from app.core.config import JWT_ALGORITHM
    from app.core.security import create_access_token

    owner = await db.get(User, world.owner)
    expired = create_access_token(owner, expires_delta=timedelta(minutes=-1))
    response = await client.get("/auth/me", headers={"Authorization": f"Bearer {expired}"})
    assert response.status_code == 401

    forged = jwt.encode({"user_id": owner.id, "token_version": 0, "type": "access"}, "wrong", algorithm=JWT_ALGORITHM)
    response = await client.get("/auth/me", headers={"token": forged})
    assert response.status_code == 401
