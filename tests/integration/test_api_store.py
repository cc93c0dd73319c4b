"""Store endpoints over HTTP."""

import pytest


class TestStore:
    @pytest.mark.asyncio
    async def test_catalog_and_owned_items(self, client, register):
        me = await register("reader-1", "Dorcas")

        store = (await client.get("/api/v1/store/items", headers=me["headers"])).json()
        assert store["talents"] == 0
        assert {i["item_key"] for i in store["items"] if i["owned"]} == {"happy"}

        mine = (await client.get("/api/v1/store/my-items", headers=me["headers"])).json()
        assert [(i["item_key"], i["acquired_via"]) for i in mine] == [("happy", "free")]

    @pytest.mark.asyncio
    async def test_purchase_needs_talents(self, client, register):
        me = await register("reader-1", "Dorcas")
        response = await client.post("/api/v1/store/purchase", json={"item_key": "jeans"}, headers=me["headers"])
        assert response.status_code == 400
        assert "Not enough talents" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_talents_from_reading_buy_items(self, client, register):
        me = await register("reader-1", "Dorcas")
        # 1 talent per chapter plus 5 per finished book: 5 x 6 + 2 x 9 = 48
        readings = [(book, 1) for book in ("Obadiah", "Philemon", "2 John", "3 John", "Jude")]
        readings += [(book, chapter) for book in ("Ruth", "Jonah") for chapter in range(1, 5)]
        for book, chapter in readings:
            await client.post(
                "/api/v1/progress/chapters/complete", json={"book": book, "chapter": chapter}, headers=me["headers"],
            )

        bought = await client.post("/api/v1/store/purchase", json={"item_key": "hoodie"}, headers=me["headers"])
        assert bought.status_code == 200
        assert bought.json()["talents_remaining"] == 8

        store = (await client.get("/api/v1/store/items", headers=me["headers"])).json()
        hoodie = next(i for i in store["items"] if i["item_key"] == "hoodie")
        assert hoodie["owned"] is True

    @pytest.mark.asyncio
    async def test_unknown_item(self, client, register):
        me = await register("reader-1", "Dorcas")
        response = await client.post("/api/v1/store/purchase", json={"item_key": "halo"}, headers=me["headers"])
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_claim_without_achievement(self, client, register):
        me = await register("reader-1", "Dorcas")
        response = await client.post("/api/v1/store/claim", json={"item_key": "crown"}, headers=me["headers"])
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_avatar_update(self, client, register):
        me = await register("reader-1", "Dorcas")
        ok = await client.put(
            "/api/v1/store/avatar", json={"config": {"face": "happy", "hat": "none"}}, headers=me["headers"],
        )
        assert ok.json() == {"avatar_config": {"face": "happy", "hat": "none"}}

        rejected = await client.put(
            "/api/v1/store/avatar", json={"config": {"hat": "crown"}}, headers=me["headers"],
        )
        assert rejected.status_code == 400
