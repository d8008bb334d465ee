"""Integration tests for the buy-in and cashout route handlers."""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio


@pytest_asyncio.fixture
async def seated(client, add_player):
    """A game open for cashout with two seated players, Alice and Bob."""
    now = datetime.now(timezone.utc).replace(microsecond=0)
    resp = await client.post(
        "/api/games",
        json={
            "start_time": (now - timedelta(hours=2)).isoformat(),
            "minimum_cashout_time": (now - timedelta(hours=1)).isoformat(),
        },
    )
    game = resp.json()
    seats = []
    for name in ("Alice", "Bob"):
        resp = await client.post(
            f"/api/games/{game['id']}/participants",
            json={"player_id": await add_player(name)},
        )
        seats.append(resp.json())
    return game, seats[0], seats[1]


# ---------------------------------------------------------------------------
# Buy-ins
# ---------------------------------------------------------------------------

class TestBuyInRoutes:

    @pytest.mark.asyncio
    async def test_record_buy_in(self, client, seated):
        _, alice, _ = seated
        resp = await client.post(
            "/api/buy-ins", json={"participant_id": alice["id"], "amount": 200}
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["amount"] == 200
        assert data["is_rebuy"] is False
        assert data["participant_id"] == alice["id"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, 1_000_001, "100", 99.9])
    async def test_rejects_bad_amount(self, client, seated, amount):
        _, alice, _ = seated
        resp = await client.post(
            "/api/buy-ins", json={"participant_id": alice["id"], "amount": amount}
        )
        assert resp.status_code == 400
        assert resp.json()["kind"] == "InvalidAmount"

    @pytest.mark.asyncio
    async def test_before_game_start(self, client, seated):
        game, alice, _ = seated
        start = datetime.fromisoformat(game["start_time"].replace("Z", "+00:00"))
        resp = await client.post(
            "/api/buy-ins",
            json={
                "participant_id": alice["id"],
                "amount": 100,
                "timestamp": (start - timedelta(minutes=5)).isoformat(),
            },
        )
        assert resp.status_code == 400
        assert resp.json()["kind"] == "BuyInBeforeGameStart"

    @pytest.mark.asyncio
    async def test_unknown_participant(self, client, seated):
        resp = await client.post(
            "/api/buy-ins", json={"participant_id": "nobody", "amount": 100}
        )
        assert resp.status_code == 404
        assert resp.json()["kind"] == "ParticipantNotFound"

    @pytest.mark.asyncio
    async def test_update_and_delete(self, client, seated):
        game, alice, _ = seated
        buy_in = (
            await client.post(
                "/api/buy-ins", json={"participant_id": alice["id"], "amount": 100}
            )
        ).json()

        resp = await client.patch(f"/api/buy-ins/{buy_in['id']}", json={"amount": 75})
        assert resp.status_code == 200
        assert resp.json()["amount"] == 75
        ledger = (await client.get(f"/api/games/{game['id']}")).json()
        assert ledger["total_buy_ins"] == 75

        resp = await client.delete(f"/api/buy-ins/{buy_in['id']}")
        assert resp.status_code == 204
        ledger = (await client.get(f"/api/games/{game['id']}")).json()
        assert ledger["total_buy_ins"] == 0

        resp = await client.delete(f"/api/buy-ins/{buy_in['id']}")
        assert resp.status_code == 404
        assert resp.json()["kind"] == "BuyInNotFound"

    @pytest.mark.asyncio
    async def test_remaining_buy_in_is_initial_after_delete(self, client, seated):
        game, alice, _ = seated
        first = (
            await client.post(
                "/api/buy-ins", json={"participant_id": alice["id"], "amount": 100}
            )
        ).json()
        rebuy = (
            await client.post(
                "/api/buy-ins", json={"participant_id": alice["id"], "amount": 50}
            )
        ).json()
        assert rebuy["is_rebuy"] is True

        resp = await client.delete(f"/api/buy-ins/{first['id']}")
        assert resp.status_code == 204

        ledger = (await client.get(f"/api/games/{game['id']}")).json()
        assert [(t["amount"], t["is_rebuy"]) for t in ledger["transactions"]] == [
            (50, False)
        ]


# ---------------------------------------------------------------------------
# Cashouts
# ---------------------------------------------------------------------------

class TestCashoutRoutes:

    @pytest.mark.asyncio
    async def test_record_cashout_once(self, client, seated):
        _, alice, _ = seated
        resp = await client.post(
            "/api/cashouts", json={"participant_id": alice["id"], "amount": 0}
        )
        assert resp.status_code == 201
        assert resp.json()["amount"] == 0

        resp = await client.post(
            "/api/cashouts", json={"participant_id": alice["id"], "amount": 10}
        )
        assert resp.status_code == 409
        assert resp.json()["kind"] == "DuplicateCashout"

    @pytest.mark.asyncio
    async def test_negative_cashout(self, client, seated):
        _, alice, _ = seated
        resp = await client.post(
            "/api/cashouts", json={"participant_id": alice["id"], "amount": -5}
        )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_batch(self, client, seated):
        game, alice, bob = seated
        resp = await client.post(
            "/api/cashouts/batch",
            json={
                "game_id": game["id"],
                "cashouts": [
                    {"participant_id": alice["id"], "amount": 40},
                    {"participant_id": bob["id"], "amount": 60},
                ],
            },
        )
        assert resp.status_code == 201
        assert [c["amount"] for c in resp.json()["cashouts"]] == [40, 60]

        ledger = (await client.get(f"/api/games/{game['id']}")).json()
        assert ledger["total_cashouts"] == 100
        assert all(p["has_cashed_out"] for p in ledger["participants"])

    @pytest.mark.asyncio
    async def test_batch_with_repeated_participant(self, client, seated):
        game, alice, _ = seated
        resp = await client.post(
            "/api/cashouts/batch",
            json={
                "game_id": game["id"],
                "cashouts": [
                    {"participant_id": alice["id"], "amount": 40},
                    {"participant_id": alice["id"], "amount": 60},
                ],
            },
        )
        assert resp.status_code == 400
        ledger = (await client.get(f"/api/games/{game['id']}")).json()
        assert ledger["total_cashouts"] == 0

    @pytest.mark.asyncio
    async def test_empty_batch(self, client, seated):
        game, _, _ = seated
        resp = await client.post(
            "/api/cashouts/batch", json={"game_id": game["id"], "cashouts": []}
        )
        assert resp.status_code == 422
