"""HTTP tests for the credit, premium-access and account-dispute routes."""

from __future__ import annotations

from datetime import datetime, timedelta

from authority_exchange.domain.enums import UserRole
from conftest import T0, as_actor, actor_for, make_listing, make_subscription, make_user


async def grant(client, admin, user, amount: int = 3) -> dict:  # noqa: ANN001
    response = await client.post(
        f"/api/v1/credits/users/{user.id}/grant",
        json={"amount": amount, "reason": "Welcome bonus"},
        headers=as_actor(admin),
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestCreditRoutes:
    async def test_grant_and_balance(self, client, market) -> None:  # noqa: ANN001
        entry = await grant(client, market.admin, market.buyer, amount=5)

        assert entry["type"] == "BONUS"
        assert entry["amount"] == 5
        assert entry["balance_after"] == 5

        balance = await client.get("/api/v1/credits/me", headers=as_actor(market.buyer))
        assert balance.json() == {"total": 5, "used": 0, "available": 5}

        history = await client.get(
            "/api/v1/credits/me/history", headers=as_actor(market.buyer)
        )
        assert history.json()["total"] == 1
        assert [e["reason"] for e in history.json()["entries"]] == ["Welcome bonus"]

    async def test_grant_needs_admin(self, client, market) -> None:  # noqa: ANN001
        response = await client.post(
            f"/api/v1/credits/users/{market.buyer.id}/grant",
            json={"amount": 100, "reason": "Free money"},
            headers=as_actor(market.buyer),
        )
        assert response.status_code == 403

    async def test_refund_without_usage_is_bad_request(self, client, market) -> None:  # noqa: ANN001
        await grant(client, market.admin, market.buyer)

        response = await client.post(
            f"/api/v1/credits/users/{market.buyer.id}/refund",
            json={"amount": 1, "reason": "Goodwill"},
            headers=as_actor(market.admin),
        )

        assert response.status_code == 400
        assert response.json()["error"] == "BAD_REQUEST"

    async def test_history_page_size_is_bounded(self, client, market) -> None:  # noqa: ANN001
        response = await client.get(
            "/api/v1/credits/me/history?limit=500", headers=as_actor(market.buyer)
        )
        assert response.status_code == 422


class TestPremiumRoutes:
    async def test_no_credits_is_payment_required(self, session, client, market) -> None:  # noqa: ANN001
        listing = await make_listing(session, market.seller, is_premium=True)

        response = await client.post(
            "/api/v1/premium-requests",
            json={"listing_id": str(listing.id)},
            headers=as_actor(market.buyer),
        )

        assert response.status_code == 402
        assert response.json()["error"] == "INSUFFICIENT_CREDITS"

    async def test_blocked_plan_is_forbidden(self, session, client, market) -> None:  # noqa: ANN001
        listing = await make_listing(session, market.seller, is_premium=True)
        await make_subscription(session, market.buyer, "STARTER")

        response = await client.post(
            "/api/v1/premium-requests",
            json={"listing_id": str(listing.id)},
            headers=as_actor(market.buyer),
        )

        assert response.status_code == 403
        assert response.json()["error"] == "PLAN_NOT_ELIGIBLE"

    async def test_admin_approval_spends_a_credit(self, session, client, market) -> None:  # noqa: ANN001
        listing = await make_listing(session, market.seller, is_premium=True)
        await grant(client, market.admin, market.buyer, amount=1)

        created = await client.post(
            "/api/v1/premium-requests",
            json={"listing_id": str(listing.id), "message": "Serious buyer"},
            headers=as_actor(market.buyer),
        )
        assert created.status_code == 201
        assert created.json()["status"] == "PENDING"

        approved = await client.post(
            f"/api/v1/premium-requests/{created.json()['id']}/approve",
            json={"notes": "Verified"},
            headers=as_actor(market.admin),
        )
        assert approved.status_code == 200
        assert approved.json()["status"] == "COMPLETED"

        balance = await client.get("/api/v1/credits/me", headers=as_actor(market.buyer))
        assert balance.json()["available"] == 0

        again = await client.post(
            "/api/v1/premium-requests",
            json={"listing_id": str(listing.id)},
            headers=as_actor(market.buyer),
        )
        assert again.status_code == 409
        assert again.json()["error"] == "ALREADY_UNLOCKED"

    async def test_fast_path_plan_unlocks_at_once(self, session, client, market) -> None:  # noqa: ANN001
        listing = await make_listing(session, market.seller, is_premium=True)
        await make_subscription(session, market.buyer, "ENTERPRISE")
        await grant(client, market.admin, market.buyer, amount=2)

        created = await client.post(
            "/api/v1/premium-requests",
            json={"listing_id": str(listing.id)},
            headers=as_actor(market.buyer),
        )

        assert created.status_code == 201
        assert created.json()["status"] == "COMPLETED"
        mine = await client.get("/api/v1/premium-requests/mine", headers=as_actor(market.buyer))
        assert [r["id"] for r in mine.json()] == [created.json()["id"]]


class TestAccountDisputeRoutes:
    async def test_block_submit_and_sweep(
        self, session, client, market, clock, revoker  # noqa: ANN001
    ) -> None:
        member = actor_for(await make_user(session, UserRole.BUYER, name="Jordan Reyes"))

        blocked = await client.post(
            "/api/v1/account-disputes",
            json={
                "user_id": str(member.id),
                "cardholder_name": "J. Rivers",
                "account_name": "Jordan Reyes",
            },
            headers=as_actor(market.admin),
        )
        assert blocked.status_code == 201
        assert blocked.json()["status"] == "PENDING"
        assert revoker.revoked == [member.id]
        dispute_url = f"/api/v1/account-disputes/{blocked.json()['id']}"

        submitted = await client.post(
            f"{dispute_url}/submit",
            json={"explanation": "My spouse's card", "contact_email": "jordan@example.com"},
            headers=as_actor(member),
        )
        assert submitted.status_code == 200
        deadline = datetime.fromisoformat(submitted.json()["auto_unblock_at"])
        assert deadline == T0 + timedelta(hours=24)

        clock.advance(hours=25)
        swept = await client.post(
            "/api/v1/account-disputes/sweep", headers=as_actor(market.admin)
        )
        assert swept.json() == {"resolved": 1}

        resolved = await client.get(dispute_url, headers=as_actor(member))
        assert resolved.json()["status"] == "RESOLVED"
        assert resolved.json()["resolution_note"] == "Automatically resolved"

    async def test_admin_resolves_and_outsiders_are_refused(
        self, session, client, market  # noqa: ANN001
    ) -> None:
        member = actor_for(await make_user(session, UserRole.SELLER))
        blocked = await client.post(
            "/api/v1/account-disputes",
            json={"user_id": str(member.id), "cardholder_name": "X", "account_name": "Y"},
            headers=as_actor(market.admin),
        )
        dispute_url = f"/api/v1/account-disputes/{blocked.json()['id']}"

        peek = await client.get(dispute_url, headers=as_actor(market.buyer))
        assert peek.status_code == 403

        self_resolve = await client.post(
            f"{dispute_url}/resolve", json={}, headers=as_actor(member)
        )
        assert self_resolve.status_code == 403

        resolved = await client.post(
            f"{dispute_url}/resolve",
            json={"note": "Identity confirmed"},
            headers=as_actor(market.admin),
        )
        assert resolved.status_code == 200
        assert resolved.json()["status"] == "RESOLVED"
        assert resolved.json()["resolved_by"] == str(market.admin.id)


class TestListingUnlockRoutes:
    async def test_unlock_then_repeat(self, client, market) -> None:  # noqa: ANN001
        await grant(client, market.admin, market.buyer, amount=2)
        unlock_url = f"/api/v1/listings/{market.listing_id}/unlock"

        first = await client.post(unlock_url, headers=as_actor(market.buyer))
        assert first.status_code == 200
        assert first.json()["already_unlocked"] is False
        assert first.json()["credits_used"] == 1

        again = await client.post(unlock_url, headers=as_actor(market.buyer))
        assert again.json()["already_unlocked"] is True

        balance = await client.get("/api/v1/credits/me", headers=as_actor(market.buyer))
        assert balance.json()["available"] == 1

        unlocked = await client.get("/api/v1/listings/unlocked", headers=as_actor(market.buyer))
        assert [u["listing_id"] for u in unlocked.json()] == [str(market.listing_id)]

    async def test_unlock_without_credits_is_payment_required(self, client, market) -> None:  # noqa: ANN001
        response = await client.post(
            f"/api/v1/listings/{market.listing_id}/unlock", headers=as_actor(market.buyer)
        )

        assert response.status_code == 402
        assert response.json()["error"] == "INSUFFICIENT_CREDITS"

    async def test_restricted_listing_is_bad_request(self, session, client, market) -> None:  # noqa: ANN001
        listing = await make_listing(session, market.seller, is_premium=True)
        await grant(client, market.admin, market.buyer, amount=1)

        response = await client.post(
            f"/api/v1/listings/{listing.id}/unlock", headers=as_actor(market.buyer)
        )

        assert response.status_code == 400
        assert response.json()["error"] == "BAD_REQUEST"
