"""Challenge endpoints over HTTP."""

import pytest


@pytest.fixture
def groups_of(client):
    async def _make(leader: dict, name: str, open_for_challenges: bool = False) -> int:
        response = await client.post("/api/v1/groups", json={"name": name}, headers=leader["headers"])
        group_id = response.json()["id"]
        if open_for_challenges:
            await client.post(f"/api/v1/groups/{group_id}/toggle-challenges", headers=leader["headers"])
        return group_id

    return _make


async def _send(client, leader: dict, challenger_id: int, challenged_id: int):
    return await client.post(
        "/api/v1/challenges",
        json={"challenger_group_id": challenger_id, "challenged_group_id": challenged_id},
        headers=leader["headers"],
    )


class TestChallengeFlow:
    @pytest.mark.asyncio
    async def test_send_and_accept(self, client, register, groups_of):
        paul = await register("paul", "Paul")
        peter = await register("peter", "Peter")
        antioch = await groups_of(paul, "Antioch")
        jerusalem = await groups_of(peter, "Jerusalem", open_for_challenges=True)

        sent = await _send(client, paul, antioch, jerusalem)
        assert sent.status_code == 201
        challenge = sent.json()
        assert challenge["status"] == "pending"
        assert challenge["can_cancel"] is True

        as_target = (await client.get(f"/api/v1/challenges/{challenge['id']}", headers=peter["headers"])).json()
        assert as_target["can_respond"] is True

        accepted = await client.post(f"/api/v1/challenges/{challenge['id']}/accept", headers=peter["headers"])
        assert accepted.status_code == 200
        body = accepted.json()
        assert body["status"] == "active"
        assert body["start_time"] is not None
        assert body["challenger"]["name"] == "Antioch"
        assert body["challenged"]["score"] == 0.0

    @pytest.mark.asyncio
    async def test_live_scores_follow_reading(self, client, register, groups_of):
        paul = await register("paul", "Paul")
        peter = await register("peter", "Peter")
        antioch = await groups_of(paul, "Antioch")
        jerusalem = await groups_of(peter, "Jerusalem", open_for_challenges=True)
        challenge_id = (await _send(client, paul, antioch, jerusalem)).json()["id"]
        await client.post(f"/api/v1/challenges/{challenge_id}/accept", headers=peter["headers"])

        await client.post(
            "/api/v1/progress/chapters/complete", json={"book": "Galatians", "chapter": 2}, headers=paul["headers"],
        )

        live = (await client.get(f"/api/v1/challenges/{challenge_id}", headers=paul["headers"])).json()
        assert live["challenger"]["xp_earned"] == 10
        assert live["challenger"]["active_members"] == 1
        assert live["challenged"]["xp_earned"] == 0

        listed = (await client.get(f"/api/v1/challenges/group/{antioch}", headers=paul["headers"])).json()
        assert [c["id"] for c in listed] == [challenge_id]

    @pytest.mark.asyncio
    async def test_target_must_be_open(self, client, register, groups_of):
        paul = await register("paul", "Paul")
        peter = await register("peter", "Peter")
        antioch = await groups_of(paul, "Antioch")
        jerusalem = await groups_of(peter, "Jerusalem")

        response = await _send(client, paul, antioch, jerusalem)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_wrong_leader_conflicts(self, client, register, groups_of):
        paul = await register("paul", "Paul")
        peter = await register("peter", "Peter")
        antioch = await groups_of(paul, "Antioch")
        jerusalem = await groups_of(peter, "Jerusalem", open_for_challenges=True)
        challenge_id = (await _send(client, paul, antioch, jerusalem)).json()["id"]

        response = await client.post(f"/api/v1/challenges/{challenge_id}/accept", headers=paul["headers"])
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_declined_is_terminal(self, client, register, groups_of):
        paul = await register("paul", "Paul")
        peter = await register("peter", "Peter")
        antioch = await groups_of(paul, "Antioch")
        jerusalem = await groups_of(peter, "Jerusalem", open_for_challenges=True)
        challenge_id = (await _send(client, paul, antioch, jerusalem)).json()["id"]

        declined = await client.post(f"/api/v1/challenges/{challenge_id}/decline", headers=peter["headers"])
        assert declined.json()["status"] == "declined"
        again = await client.post(f"/api/v1/challenges/{challenge_id}/accept", headers=peter["headers"])
        assert again.status_code == 409

        # A declined challenge frees the pair for a new one
        assert (await _send(client, paul, antioch, jerusalem)).status_code == 201

    @pytest.mark.asyncio
    async def test_cancel(self, client, register, groups_of):
        paul = await register("paul", "Paul")
        peter = await register("peter", "Peter")
        antioch = await groups_of(paul, "Antioch")
        jerusalem = await groups_of(peter, "Jerusalem", open_for_challenges=True)
        challenge_id = (await _send(client, paul, antioch, jerusalem)).json()["id"]

        cancelled = await client.post(f"/api/v1/challenges/{challenge_id}/cancel", headers=paul["headers"])
        assert cancelled.json()["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_missing_challenge(self, client, register):
        paul = await register("paul", "Paul")
        response = await client.get("/api/v1/challenges/12345", headers=paul["headers"])
        assert response.status_code == 404


class TestDiscovery:
    @pytest.mark.asyncio
    async def test_lookup_and_open_groups(self, client, register, groups_of):
        paul = await register("paul", "Paul")
        peter = await register("peter", "Peter")
        antioch = await groups_of(paul, "Antioch")
        jerusalem = await groups_of(peter, "Jerusalem", open_for_challenges=True)

        hidden = (await client.get(f"/api/v1/challenges/lookup/{antioch}", headers=paul["headers"])).json()
        assert hidden == {"found": False, "group_id": None, "name": None}
        found = (await client.get(f"/api/v1/challenges/lookup/{jerusalem}", headers=paul["headers"])).json()
        assert found["name"] == "Jerusalem"

        open_groups = (await client.get("/api/v1/challenges/open-groups", headers=paul["headers"])).json()
        assert [g["group_id"] for g in open_groups] == [jerusalem]
        excluded = await client.get(
            f"/api/v1/challenges/open-groups?exclude_group_id={jerusalem}", headers=peter["headers"],
        )
        assert excluded.json() == []
