"""Group endpoints over HTTP."""

import pytest


async def create(client, owner: dict, name: str) -> dict:
    response = await client.post("/api/v1/groups", json={"name": name}, headers=owner["headers"])
    assert response.status_code == 201, response.text
    return response.json()


class TestGroupLifecycle:
    @pytest.mark.asyncio
    async def test_create_and_list(self, client, register):
        leader = await register("leader", "Paul")
        group = await create(client, leader, "Antioch")

        assert group["is_leader"] is True
        assert group["is_member"] is True
        assert len(group["invite_code"]) == 8
        assert group["member_count"] == 1

        mine = (await client.get("/api/v1/groups", headers=leader["headers"])).json()
        assert [g["name"] for g in mine] == ["Antioch"]

    @pytest.mark.asyncio
    async def test_duplicate_name(self, client, register):
        leader = await register("leader", "Paul")
        await create(client, leader, "Antioch")
        response = await client.post("/api/v1/groups", json={"name": "antioch"}, headers=leader["headers"])
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_group(self, client, register):
        leader = await register("leader", "Paul")
        response = await client.get("/api/v1/groups/999", headers=leader["headers"])
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_join_then_non_leader_edit_conflicts(self, client, register):
        leader = await register("leader", "Paul")
        member = await register("member", "Silas")
        group = await create(client, leader, "Antioch")

        joined = await client.post("/api/v1/groups/join", json={"invite_code": group["invite_code"]}, headers=member["headers"])
        assert joined.status_code == 200
        assert joined.json()["member_count"] == 2

        response = await client.patch(f"/api/v1/groups/{group['id']}", json={"name": "Corinth"}, headers=member["headers"])
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_leader_leaves(self, client, register):
        leader = await register("leader", "Paul")
        member = await register("member", "Silas")
        group = await create(client, leader, "Antioch")
        await client.post("/api/v1/groups/join", json={"invite_code": group["invite_code"]}, headers=member["headers"])

        response = await client.post(f"/api/v1/groups/{group['id']}/leave", headers=leader["headers"])
        assert response.json() == {"group_deleted": False, "new_leader_id": member["id"]}

        details = (await client.get(f"/api/v1/groups/{group['id']}", headers=member["headers"])).json()
        assert details["leader_id"] == member["id"]

    @pytest.mark.asyncio
    async def test_delete(self, client, register):
        leader = await register("leader", "Paul")
        group = await create(client, leader, "Antioch")

        response = await client.delete(f"/api/v1/groups/{group['id']}", headers=leader["headers"])
        assert response.status_code == 204
        assert (await client.get(f"/api/v1/groups/{group['id']}", headers=leader["headers"])).status_code == 404

    @pytest.mark.asyncio
    async def test_settings_toggles_and_new_code(self, client, register):
        leader = await register("leader", "Paul")
        group = await create(client, leader, "Antioch")
        base = f"/api/v1/groups/{group['id']}"

        assert (await client.post(f"{base}/toggle-challenges", headers=leader["headers"])).json() == {"enabled": True}
        assert (await client.post(f"{base}/toggle-member-invites", headers=leader["headers"])).json() == {"enabled": True}
        new_code = (await client.post(f"{base}/invite-code", headers=leader["headers"])).json()["invite_code"]
        assert new_code != group["invite_code"]


class TestInvitesAndMembers:
    @pytest.mark.asyncio
    async def test_invite_and_accept(self, client, register):
        leader = await register("leader", "Paul")
        friend = await register("friend", "Timothy")
        group = await create(client, leader, "Antioch")

        sent = await client.post(
            f"/api/v1/groups/{group['id']}/invites", json={"user_id": friend["id"]}, headers=leader["headers"],
        )
        assert sent.status_code == 201

        inbox = (await client.get("/api/v1/groups/invites", headers=friend["headers"])).json()
        assert inbox[0]["group_name"] == "Antioch"
        assert inbox[0]["other_user_name"] == "Paul"

        accepted = await client.post(
            f"/api/v1/groups/invites/{inbox[0]['id']}/respond", json={"accept": True}, headers=friend["headers"],
        )
        assert accepted.json()["status"] == "accepted"
        board = (await client.get(f"/api/v1/groups/{group['id']}/leaderboard", headers=friend["headers"])).json()
        assert {row["user_id"] for row in board} == {leader["id"], friend["id"]}

    @pytest.mark.asyncio
    async def test_remove_member(self, client, register):
        leader = await register("leader", "Paul")
        member = await register("member", "Demas")
        group = await create(client, leader, "Antioch")
        await client.post("/api/v1/groups/join", json={"invite_code": group["invite_code"]}, headers=member["headers"])

        response = await client.delete(
            f"/api/v1/groups/{group['id']}/members/{member['id']}", headers=leader["headers"],
        )
        assert response.status_code == 204
        assert (await client.get("/api/v1/groups", headers=member["headers"])).json() == []

    @pytest.mark.asyncio
    async def test_transfer_leadership(self, client, register):
        leader = await register("leader", "Paul")
        member = await register("member", "Titus")
        group = await create(client, leader, "Antioch")
        await client.post("/api/v1/groups/join", json={"invite_code": group["invite_code"]}, headers=member["headers"])

        response = await client.post(
            f"/api/v1/groups/{group['id']}/transfer-leadership",
            json={"new_leader_id": member["id"]},
            headers=leader["headers"],
        )
        assert response.json()["leader_id"] == member["id"]
        assert response.json()["is_leader"] is False


class TestGroupViews:
    @pytest.mark.asyncio
    async def test_level_thresholds(self, client, database):
        levels = (await client.get("/api/v1/groups/level-thresholds")).json()
        assert [level["level"] for level in levels] == ["Angels", "Archangels", "Virtues", "Cherubim", "Seraphim"]

    @pytest.mark.asyncio
    async def test_member_xp_feeds_weekly_level(self, client, register):
        leader = await register("leader", "Paul")
        group = await create(client, leader, "Antioch")
        await client.post(
            "/api/v1/progress/chapters/complete", json={"book": "Acts", "chapter": 13}, headers=leader["headers"],
        )

        level = (await client.get(f"/api/v1/groups/{group['id']}/level", headers=leader["headers"])).json()
        assert level["weekly_xp"] == 10
        assert level["current_level"] == "Angels"
        assert level["xp_to_next_level"] == 490

        stats = (await client.get(f"/api/v1/groups/{group['id']}/statistics", headers=leader["headers"])).json()
        assert stats["total_chapters"] == 1
        assert stats["active_members"] == 1

    @pytest.mark.asyncio
    async def test_activity_feed_is_members_only(self, client, register):
        leader = await register("leader", "Paul")
        outsider = await register("outsider", "Alexander")
        group = await create(client, leader, "Antioch")
        await client.post(
            "/api/v1/progress/chapters/complete", json={"book": "Acts", "chapter": 13}, headers=leader["headers"],
        )

        feed = (await client.get(f"/api/v1/groups/{group['id']}/activity", headers=leader["headers"])).json()
        assert [a["activity_type"] for a in feed] == ["chapter_completed", "member_joined"]
        assert feed[0]["metadata"] == {"book": "Acts", "chapter": 13}

        denied = await client.get(f"/api/v1/groups/{group['id']}/activity", headers=outsider["headers"])
        assert denied.status_code == 409
