from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from app.main import app


def _client() -> AsyncClient:
    return AsyncClient(
        transport=ASGITransport(app=app, client=("127.0.0.1", 8080)),
        base_url="http://testserver",
    )


@pytest.mark.asyncio
async def test_purchase_to_payout_flow_over_http() -> None:
    async with _client() as client:
        rule = await client.post(
            "/referrals/rules",
            json={
                "name": "Welcome",
                "type": "first_purchase",
                "referrerReward": "10.00",
                "referredReward": "5.00",
            },
        )
        assert rule.status_code == 201
        assert rule.json()["referrerReward"] == 10.0

        partner = await client.post("/partners", json={"userId": 1})
        assert partner.status_code == 201
        partner_id = partner.json()["id"]
        assert partner.json()["status"] == "pending"
        assert partner.json()["referralCode"].startswith("P")

        activated = await client.post(f"/partners/{partner_id}/activate")
        assert activated.json()["status"] == "active"

        referral = await client.post(
            "/referrals",
            json={"referredId": 2, "referralCode": partner.json()["referralCode"].lower()},
        )
        assert referral.status_code == 201
        assert referral.json()["referrerId"] == 1

        purchase = await client.post(
            "/referrals/purchase-events",
            json={
                "eventId": "evt-http-1",
                "userId": 2,
                "subscriptionId": "sub-http-1",
                "planId": "monthly",
                "amount": "100.00",
                "timestamp": "2026-03-01T12:00:00Z",
                "isFirstPurchase": True,
            },
        )
        assert purchase.status_code == 200
        body = purchase.json()
        assert body["idempotentReplay"] is False
        assert sorted(reward["amount"] for reward in body["rewards"]) == [5.0, 10.0]
        assert [commission["amount"] for commission in body["commissions"]] == [10.0]

        earnings = await client.get(f"/partners/{partner_id}/earnings")
        earning_id = earnings.json()["data"][0]["id"]
        approved = await client.post(f"/partners/{partner_id}/earnings/{earning_id}/approve")
        assert approved.json()["status"] == "approved"

        balance = await client.get(f"/partners/{partner_id}/balance")
        assert balance.json()["available"] == 10.0
        assert balance.json()["pending"] == 10.0

        payout = await client.post(
            f"/partners/{partner_id}/payouts",
            json={"amount": "10.00", "method": "paypal", "idempotencyKey": "http-payout-1"},
        )
        assert payout.status_code == 201
        replay = await client.post(
            f"/partners/{partner_id}/payouts",
            json={"amount": "10.00", "method": "paypal", "idempotencyKey": "http-payout-1"},
        )
        assert replay.status_code == 200
        assert replay.json()["id"] == payout.json()["id"]

        completed = await client.post(
            f"/partners/{partner_id}/payouts/{payout.json()['id']}/process",
            json={"status": "completed", "transactionId": "tx-http"},
        )
        assert completed.json()["status"] == "completed"

        again = await client.post(
            f"/partners/{partner_id}/payouts/{payout.json()['id']}/process",
            json={"status": "failed"},
        )
        assert again.status_code == 409
        assert again.json() == {
            "success": False,
            "error": "payout is already completed",
            "code": "E_PAYOUT_ALREADY_FINALIZED",
        }

        refreshed = await client.get(f"/partners/{partner_id}")
        assert refreshed.json()["paidEarnings"] == 10.0
        assert refreshed.json()["referralCount"] == 1


@pytest.mark.asyncio
async def test_insufficient_balance_and_missing_entities_map_to_envelopes() -> None:
    async with _client() as client:
        partner = await client.post("/partners", json={"userId": 7})
        partner_id = partner.json()["id"]
        await client.post(f"/partners/{partner_id}/activate")

        payout = await client.post(
            f"/partners/{partner_id}/payouts",
            json={"amount": "1.00", "method": "paypal"},
        )
        assert payout.status_code == 409
        assert payout.json()["code"] == "E_INSUFFICIENT_BALANCE"

        listed = await client.get(f"/partners/{partner_id}/payouts")
        assert listed.json()["total"] == 0

        missing = await client.get("/referrals/999")
        assert missing.status_code == 404
        assert missing.json() == {
            "success": False,
            "error": "referral not found",
            "code": "E_NOT_FOUND",
        }

        duplicate = await client.post("/partners", json={"userId": 7})
        assert duplicate.status_code == 409
        assert duplicate.json()["code"] == "E_CONFLICT"


@pytest.mark.asyncio
async def test_referral_listing_is_paged() -> None:
    async with _client() as client:
        for referred_id in (2, 3, 4):
            response = await client.post(
                "/referrals",
                json={"referrerId": 1, "referredId": referred_id},
            )
            assert response.status_code == 201

        page = await client.get("/referrals", params={"page": 2, "limit": 2})
        stats = await client.get("/referrals/statistics")
        settings = await client.get("/partners/settings")

    assert page.json()["total"] == 3
    assert page.json()["totalPages"] == 2
    assert len(page.json()["data"]) == 1
    assert stats.json()["activeReferrals"] == 3
    assert settings.json()["level2Percent"] == 5.0
    assert settings.json()["rewardApprovalPolicy"] == "manual"


@pytest.mark.asyncio
async def test_partner_admin_routes() -> None:
    async with _client() as client:
        partner = await client.post("/partners", json={"userId": 11})
        partner_id = partner.json()["id"]
        code = partner.json()["referralCode"]

        patched = await client.patch(
            f"/partners/{partner_id}",
            json={"commissionRate": 12.5, "payoutMethod": "crypto", "status": "active"},
        )
        assert patched.status_code == 200
        assert patched.json()["commissionRate"] == 12.5
        assert patched.json()["payoutMethod"] == "crypto"
        assert patched.json()["status"] == "active"

        rejected = await client.patch(f"/partners/{partner_id}", json={"status": "pending"})
        assert rejected.status_code == 409
        assert rejected.json()["code"] == "E_INVALID_STATE_TRANSITION"

        found = await client.get(f"/partners/by-code/{code.lower()}")
        assert found.json()["id"] == partner_id

        dashboard = await client.get(f"/partners/{partner_id}/dashboard")
        assert dashboard.json()["partner"]["id"] == partner_id
        assert dashboard.json()["balance"]["available"] == 0.0
        assert dashboard.json()["recentEarnings"] == []

        stats = await client.get("/partners/stats/overview")
        assert stats.json()["totalPartners"] == 1
        assert stats.json()["activePartners"] == 1


@pytest.mark.asyncio
async def test_complete_returns_referral_and_paid_reward_blocks_cancel() -> None:
    async with _client() as client:
        rule = await client.post(
            "/referrals/rules",
            json={
                "name": "Manual",
                "type": "subscription",
                "referrerReward": "4.00",
                "referredReward": "0",
            },
        )
        referral = await client.post(
            "/referrals",
            json={"referrerId": 21, "referredId": 22, "ruleId": rule.json()["id"]},
        )
        referral_id = referral.json()["id"]

        completed = await client.post(f"/referrals/{referral_id}/complete")
        assert completed.status_code == 200
        assert completed.json()["id"] == referral_id
        assert completed.json()["status"] == "completed"

        rewards = await client.get("/referrals/rewards", params={"referralId": referral_id})
        reward_id = rewards.json()["data"][0]["id"]
        await client.post(f"/referrals/rewards/{reward_id}/approve")
        paid = await client.post(
            f"/referrals/rewards/{reward_id}/pay",
            json={"paidMethod": "paypal", "transactionId": "tx-manual"},
        )
        assert paid.json()["status"] == "paid"

        cancel = await client.post(f"/referrals/{referral_id}/cancel", json={"reason": "fraud"})
        assert cancel.status_code == 409
        assert cancel.json()["code"] == "E_CANNOT_CANCEL_PAID_REWARD"

        unchanged = await client.get(f"/referrals/{referral_id}")
        assert unchanged.json()["status"] == "completed"
