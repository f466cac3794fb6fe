"""HTTP tests for the offer, transaction and payment routes."""

from __future__ import annotations

import uuid
from decimal import Decimal

from conftest import as_actor


async def place_offer(client, market, amount: str = "98000") -> dict:  # noqa: ANN001
    response = await client.post(
        "/api/v1/offers",
        json={"listing_id": str(market.listing_id), "amount": amount, "message": "Ready to wire"},
        headers=as_actor(market.buyer),
    )
    assert response.status_code == 201, response.text
    return response.json()


async def open_transaction(client, market) -> dict:  # noqa: ANN001
    offer = await place_offer(client, market)
    response = await client.post(
        f"/api/v1/offers/{offer['id']}/accept", headers=as_actor(market.seller)
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestOfferRoutes:
    async def test_buyer_places_offer(self, client, market) -> None:  # noqa: ANN001
        offer = await place_offer(client, market)

        assert offer["status"] == "PENDING"
        assert Decimal(offer["amount"]) == Decimal("98000")
        assert offer["seller_id"] == str(market.seller.id)

    async def test_counter_and_accept_counter(self, client, market) -> None:  # noqa: ANN001
        offer = await place_offer(client, market, amount="80000")

        countered = await client.post(
            f"/api/v1/offers/{offer['id']}/counter",
            json={"counter_amount": "92000"},
            headers=as_actor(market.seller),
        )
        assert countered.status_code == 200
        assert countered.json()["status"] == "COUNTERED"

        accepted = await client.post(
            f"/api/v1/offers/{offer['id']}/accept-counter", headers=as_actor(market.buyer)
        )
        assert accepted.status_code == 200
        assert Decimal(accepted.json()["amount"]) == Decimal("92000")

    async def test_accept_opens_transaction(self, client, market) -> None:  # noqa: ANN001
        tx = await open_transaction(client, market)

        assert tx["status"] == "AWAITING_DEPOSIT"
        assert Decimal(tx["deposit_amount"]) == Decimal("9800")
        assert Decimal(tx["final_payment_amount"]) == Decimal("88200")
        assert Decimal(tx["platform_fee"]) == Decimal("2940")

    async def test_duplicate_offer_conflicts(self, client, market) -> None:  # noqa: ANN001
        await place_offer(client, market)

        response = await client.post(
            "/api/v1/offers",
            json={"listing_id": str(market.listing_id), "amount": "99000"},
            headers=as_actor(market.buyer),
        )

        assert response.status_code == 409
        assert response.json()["error"] == "DUPLICATE_REQUEST"

    async def test_negative_amount_is_rejected_by_validation(self, client, market) -> None:  # noqa: ANN001
        response = await client.post(
            "/api/v1/offers",
            json={"listing_id": str(market.listing_id), "amount": "-5"},
            headers=as_actor(market.buyer),
        )
        assert response.status_code == 422


class TestErrorMapping:
    async def test_unknown_offer_is_404(self, client, market) -> None:  # noqa: ANN001
        response = await client.get(
            f"/api/v1/offers/{uuid.uuid4()}", headers=as_actor(market.buyer)
        )

        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    async def test_seller_offer_is_forbidden(self, client, market) -> None:  # noqa: ANN001
        response = await client.post(
            "/api/v1/offers",
            json={"listing_id": str(market.listing_id), "amount": "1000"},
            headers=as_actor(market.seller),
        )

        assert response.status_code == 403
        assert response.json()["error"] == "FORBIDDEN"

    async def test_malformed_identity_is_forbidden(self, client, market) -> None:  # noqa: ANN001
        response = await client.get(
            f"/api/v1/offers/{uuid.uuid4()}",
            headers={"X-Actor-Id": "not-a-uuid", "X-Actor-Role": "BUYER"},
        )
        assert response.status_code == 403

        response = await client.get(
            f"/api/v1/offers/{uuid.uuid4()}",
            headers={"X-Actor-Id": str(market.buyer.id), "X-Actor-Role": "ROOT"},
        )
        assert response.status_code == 403

    async def test_missing_identity_fails_validation(self, client) -> None:  # noqa: ANN001
        response = await client.get(f"/api/v1/offers/{uuid.uuid4()}")
        assert response.status_code == 422

    async def test_out_of_order_step_is_invalid_transition(self, client, market) -> None:  # noqa: ANN001
        tx = await open_transaction(client, market)

        response = await client.post(
            f"/api/v1/transactions/{tx['id']}/review", headers=as_actor(market.admin)
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "INVALID_TRANSITION"
        assert "AWAITING_DEPOSIT" in body["message"]

    async def test_admin_routes_refuse_parties(self, client, market) -> None:  # noqa: ANN001
        tx = await open_transaction(client, market)

        response = await client.post(
            f"/api/v1/transactions/{tx['id']}/review", headers=as_actor(market.seller)
        )

        assert response.status_code == 403


class TestTransactionFlow:
    async def test_deposit_verification_reveals_buyer(self, client, market, sink) -> None:  # noqa: ANN001
        tx = await open_transaction(client, market)
        tx_url = f"/api/v1/transactions/{tx['id']}"

        before = await client.get(tx_url, headers=as_actor(market.seller))
        assert before.status_code == 200
        assert before.json()["buyer_contact_visible"] is False
        assert before.json()["buyer"]["email"] is None

        payment = await client.post(
            f"{tx_url}/deposit",
            json={"method": "WIRE", "reference": "FED-20260302-01"},
            headers=as_actor(market.buyer),
        )
        assert payment.status_code == 201
        assert payment.json()["status"] == "PENDING"
        assert Decimal(payment.json()["amount"]) == Decimal("9800")

        verified = await client.post(
            f"{tx_url}/deposit/verify",
            json={"payment_id": payment.json()["id"]},
            headers=as_actor(market.admin),
        )
        assert verified.status_code == 200
        assert verified.json()["status"] == "DEPOSIT_RECEIVED"

        after = await client.get(tx_url, headers=as_actor(market.seller))
        assert after.json()["buyer_contact_visible"] is True
        assert after.json()["buyer"]["email"] is not None
        buyer_view = await client.get(tx_url, headers=as_actor(market.buyer))
        assert buyer_view.json()["seller_contact_visible"] is False
        assert buyer_view.json()["seller"]["email"] is None
        assert "Deposit Confirmed" in sink.titles_for(market.buyer.id)

        timeline = await client.get(f"{tx_url}/timeline", headers=as_actor(market.buyer))
        titles = [entry["title"] for entry in timeline.json()]
        assert "Transaction Created" in titles
        assert "Deposit Verified" in titles

        payments = await client.get(f"{tx_url}/payments", headers=as_actor(market.buyer))
        assert [p["status"] for p in payments.json()] == ["COMPLETED"]

    async def test_gateway_deposit_settles_by_event(self, client, market) -> None:  # noqa: ANN001
        tx = await open_transaction(client, market)

        payment = await client.post(
            f"/api/v1/transactions/{tx['id']}/deposit",
            json={"method": "STRIPE"},
            headers=as_actor(market.buyer),
        )
        assert payment.json()["status"] == "PROCESSING"

        settled = await client.post(
            "/api/v1/payments/gateway-events",
            json={"payment_id": payment.json()["id"], "succeeded": True},
        )
        assert settled.status_code == 200
        assert settled.json()["status"] == "COMPLETED"

        view = await client.get(
            f"/api/v1/transactions/{tx['id']}", headers=as_actor(market.buyer)
        )
        assert view.json()["transaction"]["status"] == "DEPOSIT_RECEIVED"

    async def test_dispute_and_resume(self, client, market) -> None:  # noqa: ANN001
        tx = await open_transaction(client, market)
        tx_url = f"/api/v1/transactions/{tx['id']}"

        disputed = await client.post(
            f"{tx_url}/dispute",
            json={"reason": "Authority paperwork missing"},
            headers=as_actor(market.buyer),
        )
        assert disputed.status_code == 200
        assert disputed.json()["status"] == "DISPUTED"
        assert disputed.json()["status_before_dispute"] == "AWAITING_DEPOSIT"

        resumed = await client.post(
            f"{tx_url}/dispute/resolve",
            json={"resolution": "RESUME", "note": "Paperwork received"},
            headers=as_actor(market.admin),
        )
        assert resumed.status_code == 200
        assert resumed.json()["status"] == "AWAITING_DEPOSIT"

    async def test_cancel(self, client, market) -> None:  # noqa: ANN001
        tx = await open_transaction(client, market)

        cancelled = await client.post(
            f"/api/v1/transactions/{tx['id']}/cancel",
            json={"reason": "Buyer financing fell through"},
            headers=as_actor(market.buyer),
        )

        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "CANCELLED"
        assert cancelled.json()["cancellation_reason"] == "Buyer financing fell through"

    async def test_parties_list_their_transactions(self, client, market) -> None:  # noqa: ANN001
        tx = await open_transaction(client, market)

        for party in (market.buyer, market.seller):
            mine = await client.get("/api/v1/transactions", headers=as_actor(party))
            assert mine.status_code == 200
            assert [t["id"] for t in mine.json()] == [tx["id"]]

        admin_view = await client.get("/api/v1/transactions", headers=as_actor(market.admin))
        assert admin_view.json() == []
