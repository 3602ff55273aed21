import asyncio

from aiohttp import test_utils

from node_helpers import make_node

from dashboard import create_app


def test_stats_endpoint_reports_node_state(tmp_path):
    async def scenario():
        bus = []
        node, _ = make_node(bus, tmp_path / "a.json")
        node.handle_input("create song A|B|L|no")
        node.handle_input("create song C|D|M|no")
        node.handle_input("publish song 1")
        node.handle_input("chat hi")

        async with test_utils.TestClient(test_utils.TestServer(create_app(node))) as client:
            resp = await client.get("/api/stats")
            assert resp.status == 200
            stats = await resp.json()

            page = await client.get("/")
            assert page.status == 200
            assert node.peer_id in await page.text()

        assert stats["peer_id"] == node.peer_id
        assert stats["songs"] == 2
        assert stats["public_songs"] == 1
        assert stats["catalog_revision"] == node.store.revision
        assert stats["sent"] == {"chat": 1}
        assert stats["peers"] == []

    asyncio.run(scenario())


def test_stats_endpoint_survives_missing_catalog(tmp_path):
    async def scenario():
        node, _ = make_node([], tmp_path / "missing.json", init=False)
        async with test_utils.TestClient(test_utils.TestServer(create_app(node))) as client:
            stats = await (await client.get("/api/stats")).json()
        assert stats["songs"] is None
        assert "cannot read catalog" in stats["last_error"]

    asyncio.run(scenario())
