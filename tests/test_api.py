"""
Procurement Orders - API Tests

End-to-end tests through the FastAPI app:
- Authentication header handling
- Order placement and lifecycle events
- Approver inbox
- Error response shape
- Budget endpoints
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from app.models.notification import Notification, NotificationType
from tests.fixtures.orders import as_user


def order_payload(*lines):
    return {"items": [{"product_id": str(product.id), "quantity": qty} for product, qty in lines]}


# =============================================================================
# HEALTH AND AUTH
# =============================================================================

class TestHealthAndAuth:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_missing_user_header(self, client):
        response = await client.get("/api/v1/orders")
        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_malformed_user_header(self, client):
        response = await client.get("/api/v1/orders", headers={"X-User-Id": "not-a-uuid"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_user(self, client):
        response = await client.get("/api/v1/orders", headers={"X-User-Id": str(uuid4())})
        assert response.status_code == 401


# =============================================================================
# ORDERS
# =============================================================================

class TestOrderEndpoints:

    @pytest.mark.asyncio
    async def test_small_order_approved_on_creation(self, client, staff, products):
        response = await client.post(
            "/api/v1/orders",
            json=order_payload((products.pencil, 1)),
            headers=as_user(staff.requester),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "approved"
        assert Decimal(body["grand_total"]) == Decimal("11.50")
        assert body["order_number"].startswith("ORD-")
        assert len(body["items"]) == 1
        assert body["items"][0]["product_name"] == "HB Pencil"

    @pytest.mark.asyncio
    async def test_supplied_shipping_cost(self, client, staff, products):
        payload = order_payload((products.pencil, 1))
        payload["shipping_cost"] = "25.00"

        response = await client.post("/api/v1/orders", json=payload, headers=as_user(staff.requester))

        assert response.status_code == 201
        body = response.json()
        assert Decimal(body["shipping_cost"]) == Decimal("25.00")
        assert Decimal(body["grand_total"]) == Decimal("36.50")

    @pytest.mark.asyncio
    async def test_negative_shipping_cost_rejected(self, client, staff, products):
        payload = order_payload((products.pencil, 1))
        payload["shipping_cost"] = "-1.00"

        response = await client.post("/api/v1/orders", json=payload, headers=as_user(staff.requester))

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_empty_order_rejected(self, client, staff):
        response = await client.post("/api/v1/orders", json={"items": []}, headers=as_user(staff.requester))

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "INVALID_ORDER"
        assert detail["field"] == "items"

    @pytest.mark.asyncio
    async def test_approval_flow(self, client, sink, staff, products):
        created = await client.post(
            "/api/v1/orders",
            json=order_payload((products.workstation, 1)),
            headers=as_user(staff.requester),
        )
        order_id = created.json()["id"]
        assert created.json()["status"] == "pending"

        inbox = await client.get("/api/v1/approvals/pending", headers=as_user(staff.procurement_officer))
        assert [r["order_id"] for r in inbox.json()] == [order_id]
        assert inbox.json()[0]["level"] == 2

        response = await client.post(
            f"/api/v1/approvals/orders/{order_id}/approve",
            headers=as_user(staff.procurement_officer),
        )
        assert response.status_code == 200
        assert response.json()["status"] == "approved"
        assert response.json()["approved_by_id"] == str(staff.procurement_officer.id)
        assert len(sink.of_type(NotificationType.ORDER_APPROVED)) == 1

        history = await client.get(f"/api/v1/orders/{order_id}/approvals", headers=as_user(staff.requester))
        assert history.json()[0]["status"] == "approved"

    @pytest.mark.asyncio
    async def test_reject_requires_comments(self, client, staff, products):
        created = await client.post(
            "/api/v1/orders",
            json=order_payload((products.workstation, 1)),
            headers=as_user(staff.requester),
        )
        order_id = created.json()["id"]

        response = await client.post(
            f"/api/v1/approvals/orders/{order_id}/reject",
            json={"comments": "  "},
            headers=as_user(staff.procurement_officer),
        )
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "REASON_REQUIRED"

        response = await client.post(
            f"/api/v1/approvals/orders/{order_id}/reject",
            json={"comments": "Not in this quarter's plan"},
            headers=as_user(staff.procurement_officer),
        )
        assert response.status_code == 200
        assert response.json()["status"] == "declined"
        assert response.json()["rejection_reason"] == "Not in this quarter's plan"

    @pytest.mark.asyncio
    async def test_illegal_event_returns_conflict(self, client, staff, products):
        created = await client.post(
            "/api/v1/orders",
            json=order_payload((products.pencil, 1)),
            headers=as_user(staff.requester),
        )
        order_id = created.json()["id"]

        response = await client.post(
            f"/api/v1/orders/{order_id}/events",
            json={"event": "dispatch"},
            headers=as_user(staff.operations),
        )

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["code"] == "ILLEGAL_TRANSITION"
        assert detail["details"] == {"current_status": "approved", "attempted_event": "dispatch"}
        assert "timestamp" in detail

    @pytest.mark.asyncio
    async def test_operations_walks_order(self, client, staff, products):
        created = await client.post(
            "/api/v1/orders",
            json=order_payload((products.pencil, 2)),
            headers=as_user(staff.requester),
        )
        order_id = created.json()["id"]

        for event, expected in [
            ("acknowledge", "acknowledged"),
            ("start_processing", "in_process"),
            ("verify_payment", "finalizing"),
            ("dispatch", "out_for_delivery"),
            ("deliver", "delivered"),
            ("close", "closed"),
        ]:
            response = await client.post(
                f"/api/v1/orders/{order_id}/events",
                json={"event": event},
                headers=as_user(staff.operations),
            )
            assert response.status_code == 200, response.text
            assert response.json()["status"] == expected

        assert response.json()["is_finalized"] is True

    @pytest.mark.asyncio
    async def test_unknown_event_is_validation_error(self, client, staff, products):
        created = await client.post(
            "/api/v1/orders",
            json=order_payload((products.pencil, 1)),
            headers=as_user(staff.requester),
        )
        response = await client.post(
            f"/api/v1/orders/{created.json()['id']}/events",
            json={"event": "teleport"},
            headers=as_user(staff.operations),
        )
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_cross_tenant_read_forbidden(self, client, staff, products, outsider):
        created = await client.post(
            "/api/v1/orders",
            json=order_payload((products.pencil, 1)),
            headers=as_user(staff.requester),
        )
        response = await client.get(f"/api/v1/orders/{created.json()['id']}", headers=as_user(outsider))
        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_unknown_order(self, client, staff):
        response = await client.get(f"/api/v1/orders/{uuid4()}", headers=as_user(staff.executive))
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "ORDER_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_list_orders_with_status_filter(self, client, staff, products):
        await client.post("/api/v1/orders", json=order_payload((products.pencil, 1)), headers=as_user(staff.requester))
        await client.post(
            "/api/v1/orders", json=order_payload((products.workstation, 1)), headers=as_user(staff.requester)
        )

        response = await client.get("/api/v1/orders?status=pending", headers=as_user(staff.executive))

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["orders"][0]["status"] == "pending"

    @pytest.mark.asyncio
    async def test_edit_and_remove_items(self, client, staff, products):
        created = await client.post(
            "/api/v1/orders",
            json=order_payload((products.workstation, 1), (products.pencil, 1)),
            headers=as_user(staff.requester),
        )
        order = created.json()
        pencil_item = order["items"][1]["id"]

        response = await client.patch(
            f"/api/v1/orders/{order['id']}/items/{pencil_item}",
            json={"quantity": 10},
            headers=as_user(staff.requester),
        )
        assert response.status_code == 200
        assert Decimal(response.json()["grand_total"]) == Decimal("25115.00")

        response = await client.delete(
            f"/api/v1/orders/{order['id']}/items/{pencil_item}",
            headers=as_user(staff.requester),
        )
        assert response.status_code == 200
        assert len(response.json()["items"]) == 1

        response = await client.post(f"/api/v1/orders/{order['id']}/finalize", headers=as_user(staff.requester))
        assert response.json()["is_finalized"] is True

    @pytest.mark.asyncio
    async def test_installment_on_immediate_order(self, client, staff, products):
        created = await client.post(
            "/api/v1/orders",
            json=order_payload((products.workstation, 1)),
            headers=as_user(staff.requester),
        )
        response = await client.post(
            f"/api/v1/orders/{created.json()['id']}/installments",
            headers=as_user(staff.operations),
        )
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "NOT_INSTALLMENT_ORDER"


# =============================================================================
# BUDGETS
# =============================================================================

class TestBudgetEndpoints:

    @pytest.mark.asyncio
    async def test_allocation_and_summary(self, client, staff, products):
        await client.post("/api/v1/orders", json=order_payload((products.pencil, 2)), headers=as_user(staff.requester))
        created = await client.post(
            "/api/v1/orders", json=order_payload((products.pencil, 1)), headers=as_user(staff.requester)
        )
        fiscal_year = int(created.json()["ledger_committed_at"][:4])

        response = await client.post(
            "/api/v1/budgets/allocations",
            json={
                "fiscal_year": fiscal_year,
                "allocated_amount": "10000.00",
                "cost_center_id": str(staff.cost_center_id),
            },
            headers=as_user(staff.executive),
        )
        assert response.status_code == 201
        assert Decimal(response.json()["spent_amount"]) == Decimal("34.50")
        assert Decimal(response.json()["remaining_amount"]) == Decimal("9965.50")

        summary = await client.get(
            f"/api/v1/budgets/summary?fiscal_year={fiscal_year}",
            headers=as_user(staff.supervisor),
        )
        assert summary.status_code == 200
        assert Decimal(summary.json()["total_spent"]) == Decimal("34.50")
        assert Decimal(summary.json()["total_allocated"]) == Decimal("10000.00")

    @pytest.mark.asyncio
    async def test_requester_cannot_read_summary(self, client, staff):
        response = await client.get("/api/v1/budgets/summary", headers=as_user(staff.requester))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_supervisor_cannot_allocate(self, client, staff):
        response = await client.post(
            "/api/v1/budgets/allocations",
            json={"fiscal_year": 2026, "allocated_amount": "100.00"},
            headers=as_user(staff.supervisor),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_foreign_tenant_summary_forbidden(self, client, staff):
        response = await client.get(
            f"/api/v1/budgets/summary?tenant_id={uuid4()}",
            headers=as_user(staff.executive),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_super_admin_names_tenant(self, client, staff, super_admin):
        response = await client.get("/api/v1/budgets/summary", headers=as_user(super_admin))
        assert response.status_code == 422

        response = await client.get(
            f"/api/v1/budgets/summary?tenant_id={staff.tenant_id}",
            headers=as_user(super_admin),
        )
        assert response.status_code == 200
        assert response.json()["tenant_id"] == str(staff.tenant_id)


# =============================================================================
# NOTIFICATIONS
# =============================================================================

class TestNotificationEndpoints:

    @pytest.mark.asyncio
    async def test_list_and_mark_read(self, client, db_session, staff):
        db_session.add(Notification(
            user_id=staff.requester.id,
            tenant_id=staff.tenant_id,
            notification_type=NotificationType.ORDER_APPROVED,
            title="Order Approved",
            message="Your order ORD-1 has been approved",
            data={"order_number": "ORD-1"},
        ))
        await db_session.commit()

        response = await client.get("/api/v1/notifications?unread_only=true", headers=as_user(staff.requester))
        assert response.status_code == 200
        assert [n["title"] for n in response.json()] == ["Order Approved"]

        response = await client.post("/api/v1/notifications/read-all", headers=as_user(staff.requester))
        assert response.json() == {"marked_read": 1}

        response = await client.get("/api/v1/notifications?unread_only=true", headers=as_user(staff.requester))
        assert response.json() == []
