"""
Integration tests for the HTTP API.

Tests cover:
- The routing status table over real HTTP
- JSON and XML negotiation
- Uniqueness with separator-insensitive ISBNs
- Capacity limits and low-watermark repopulation
- Access gate and named databases
"""

import json
from concurrent.futures import ThreadPoolExecutor
from xml.etree import ElementTree

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer

from apigen.erapi_server.api import (
    ApiDispatcher,
    HookPipeline,
    LowWatermarkRepopulator,
    Router,
    create_http_app,
)
from apigen.erapi_server.api.http_server import DISPATCHER_KEY, EXECUTOR_KEY
from apigen.erapi_server.store import DatabaseManager

DB_HEADER = "X-Database-Name"


def build_app(registry, populator, access_gate=None, prefix=""):
    hooks = HookPipeline()
    for entity in registry.entities():
        hooks.add_post_request_hook(LowWatermarkRepopulator(entity.name))
    dispatcher = ApiDispatcher(
        Router(registry, prefix=prefix),
        DatabaseManager(registry, populator=populator, max_databases=3),
        hooks=hooks,
        access_gate=access_gate,
        database_header=DB_HEADER,
    )
    return create_http_app(dispatcher)


@pytest_asyncio.fixture
async def client(registry, populator):
    async with TestClient(TestServer(build_app(registry, populator))) as client:
        yield client


def new_item(isbn="978-1-11-111111-1", **overrides):
    payload = {"type": "cd", "isbn13": isbn, "price": 9.99}
    payload.update(overrides)
    return payload


async def error_messages(resp):
    body = await resp.json()
    return body["errorMessages"]


class TestRouting:
    """Status codes for every routed verb."""

    @pytest.mark.asyncio
    async def test_list(self, client):
        resp = await client.get("/items")

        assert resp.status == 200
        assert resp.headers["Content-Type"] == "application/json"
        body = await resp.json()
        assert [i["id"] for i in body["items"]] == list(range(1, 9))
        assert set(body["items"][0]) == {"id", "type", "isbn13", "price", "numberinstock"}

    @pytest.mark.asyncio
    async def test_head(self, client):
        resp = await client.head("/items")

        assert resp.status == 200
        assert await resp.read() == b""

    @pytest.mark.asyncio
    async def test_options(self, client):
        resp = await client.options("/items/1")

        assert resp.status == 204
        assert resp.headers["Allow"] == "GET, HEAD, OPTIONS, PUT, POST, DELETE"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["PUT", "PATCH", "DELETE", "TRACE"])
    async def test_collection_method_not_allowed(self, client, method):
        resp = await client.request(method, "/items")

        assert resp.status == 405
        assert resp.headers["Allow"] == "GET, HEAD, OPTIONS, POST"
        assert await resp.read() == b""

    @pytest.mark.asyncio
    async def test_item_patch_not_allowed(self, client):
        resp = await client.patch("/items/1", json={"price": 1})
        assert resp.status == 405

    @pytest.mark.asyncio
    async def test_unknown_path(self, client):
        resp = await client.get("/widgets")

        assert resp.status == 404
        assert await error_messages(resp) == ["No such endpoint: /widgets"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/items/abc", "/items/0", "/items/999"])
    async def test_unknown_item(self, client, path):
        resp = await client.get(path)
        assert resp.status == 404

    @pytest.mark.asyncio
    async def test_create_get_delete(self, client):
        resp = await client.post("/items", json=new_item())
        assert resp.status == 201
        created = await resp.json()
        assert created["id"] == 9
        assert created["numberinstock"] == 0
        assert resp.headers["Location"] == "/items/9"

        resp = await client.get("/items/9")
        assert resp.status == 200
        assert (await resp.json())["isbn13"] == "978-1-11-111111-1"

        resp = await client.delete("/items/9")
        assert resp.status == 200

        resp = await client.get("/items/9")
        assert resp.status == 404

    @pytest.mark.asyncio
    async def test_put_replaces(self, client):
        resp = await client.put("/items/1", json=new_item(numberinstock=4))

        assert resp.status == 200
        assert (await resp.json())["numberinstock"] == 4

    @pytest.mark.asyncio
    async def test_post_amends(self, client):
        resp = await client.post("/items/2", json={"price": 3})

        assert resp.status == 200
        body = await resp.json()
        assert body["price"] == 3.0
        assert body["isbn13"] == "978-0-00-000002-2"


class TestValidation:
    """Validation failures over HTTP."""

    @pytest.mark.asyncio
    async def test_create_with_id(self, client):
        resp = await client.post("/items", json=new_item(id=3))

        assert resp.status == 400
        assert await error_messages(resp) == ["Not allowed to create with id"]

    @pytest.mark.asyncio
    async def test_missing_body(self, client):
        resp = await client.post("/items", headers={"Content-Type": "application/json"})

        assert resp.status == 400
        assert await error_messages(resp) == ["Request body is required"]

    @pytest.mark.asyncio
    async def test_unquoted_json_value(self, client):
        resp = await client.post(
            "/items",
            data=b'{"price":2.00,"numberinstock":2,"isbn13":"1234567890123","type":book}',
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )

        assert resp.status == 201
        assert resp.headers["Content-Type"] == "application/json"
        body = await resp.json()
        assert body["type"] == "book"
        assert body["price"] == 2.0
        assert body["isbn13"] == "1234567890123"

    @pytest.mark.asyncio
    async def test_unquoted_json_value_duplicate_isbn(self, client):
        resp = await client.post(
            "/items",
            data=b'{"price":2.00,"isbn13":"978-0-00-000002-2","type":book}',
            headers={"Content-Type": "application/json"},
        )

        assert resp.status == 400
        assert await error_messages(resp) == ["Field isbn13 Value is not unique"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "data", [b'{"numberinstock":' + b"9" * 5000 + b"}", b"[" * 100000 + b"]" * 100000]
    )
    async def test_unparseable_json_is_bad_request(self, client, data):
        resp = await client.post(
            "/items", data=data, headers={"Content-Type": "application/json"}
        )

        assert resp.status == 400
        assert (await error_messages(resp))[0].startswith("Invalid JSON body")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "isbn", ["978-0-00-000001-1", "9780000000011", "978 0 00 000001 1", "9-7-8-0000000011"]
    )
    async def test_duplicate_isbn(self, client, isbn):
        resp = await client.post("/items", json=new_item(isbn=isbn))

        assert resp.status == 400
        assert await error_messages(resp) == ["Field isbn13 Value is not unique"]

    @pytest.mark.asyncio
    async def test_amend_to_duplicate(self, client):
        resp = await client.post("/items/2", json={"isbn13": "9780000000011"})

        assert resp.status == 400
        assert await error_messages(resp) == ["Field isbn13 Value is not unique"]

    @pytest.mark.asyncio
    async def test_replace_to_duplicate(self, client):
        resp = await client.put("/items/2", json=new_item(isbn="978-000-000-001-1"))
        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_amend_own_isbn_spelling(self, client):
        resp = await client.post("/items/1", json={"isbn13": "9780000000011"})

        assert resp.status == 200
        assert (await resp.json())["isbn13"] == "9780000000011"

    @pytest.mark.asyncio
    async def test_amend_id(self, client):
        resp = await client.post("/items/1", json={"id": 2})

        assert resp.status == 400
        assert await error_messages(resp) == ["Not allowed to amend id"]

    @pytest.mark.asyncio
    async def test_multiple_errors(self, client):
        resp = await client.post("/items", json={"price": "free", "colour": "red"})

        assert resp.status == 400
        assert await error_messages(resp) == [
            "Field type is mandatory",
            "Field isbn13 is mandatory",
            "Field price does not match type FLOAT",
            "Could not find field: colour",
        ]


class TestNegotiation:
    """JSON and XML request and response bodies."""

    @pytest.mark.asyncio
    async def test_xml_request_json_response(self, client):
        resp = await client.post(
            "/items",
            data=b"<item><type>book</type><isbn13>111-1-11-111111-9</isbn13>"
            b"<price>12.5</price></item>",
            headers={"Content-Type": "application/xml", "Accept": "application/json"},
        )

        assert resp.status == 201
        assert resp.headers["Content-Type"] == "application/json"
        body = await resp.json()
        assert body["price"] == 12.5
        assert body["type"] == "book"

    @pytest.mark.asyncio
    async def test_xml_response(self, client):
        resp = await client.get("/items/1", headers={"Accept": "application/xml"})

        assert resp.status == 200
        assert resp.headers["Content-Type"] == "application/xml"
        root = ElementTree.fromstring(await resp.read())
        assert root.tag == "item"
        assert root.findtext("id") == "1"

    @pytest.mark.asyncio
    async def test_xml_errors(self, client):
        resp = await client.get("/items/99", headers={"Accept": "application/xml"})

        assert resp.status == 404
        root = ElementTree.fromstring(await resp.read())
        assert root.tag == "errorMessages"
        assert root.findtext("errorMessage") == "Could not find an instance with items/99"

    @pytest.mark.asyncio
    async def test_not_acceptable(self, client):
        resp = await client.get("/items", headers={"Accept": "text/html"})

        assert resp.status == 406
        assert resp.headers["Content-Type"] == "application/json"
        assert await error_messages(resp) == ["Unrecognised Accept type: text/html"]

    @pytest.mark.asyncio
    async def test_unsupported_content_type(self, client):
        resp = await client.post(
            "/items",
            data=json.dumps(new_item()).encode(),
            headers={"Content-Type": "text/plain"},
        )

        assert resp.status == 400
        assert await error_messages(resp) == ["Unsupported content type: text/plain"]
        assert (await (await client.get("/items")).json())["items"][-1]["id"] == 8


class TestCapacity:
    """Capacity limits and repopulation."""

    @pytest.mark.asyncio
    async def test_capacity_limit(self, client):
        for n in range(92):
            resp = await client.post("/items", json=new_item(isbn=f"300-0-00-{n:06d}-0"))
            assert resp.status == 201

        resp = await client.post("/items", json=new_item(isbn="400-0-00-000000-0"))

        assert resp.status == 400
        assert await error_messages(resp) == [
            "ERROR: Cannot add instance, maximum limit of 100 reached"
        ]
        body = await (await client.get("/items")).json()
        assert len(body["items"]) == 100

    @pytest.mark.asyncio
    async def test_repopulates_below_watermark(self, client):
        for instance_id in range(1, 5):
            resp = await client.delete(f"/notes/{instance_id}")
            assert resp.status == 200

        body = await (await client.get("/notes")).json()
        assert len(body["notes"]) == 12

    @pytest.mark.asyncio
    async def test_repopulates_items_with_fresh_isbns(self, client):
        for instance_id in range(1, 5):
            resp = await client.delete(f"/items/{instance_id}")
            assert resp.status == 200

        body = await (await client.get("/items")).json()
        assert len(body["items"]) == 12
        isbns = [item["isbn13"] for item in body["items"]]
        assert len(set(isbns)) == 12

    @pytest.mark.asyncio
    async def test_never_empty(self, client):
        for _ in range(30):
            body = await (await client.get("/notes")).json()
            assert body["notes"]
            await client.delete(f"/notes/{body['notes'][0]['id']}")

        body = await (await client.get("/notes")).json()
        assert len(body["notes"]) >= 5


class TestAccessGate:
    """The optional access gate."""

    @pytest.mark.asyncio
    async def test_denied(self, registry, populator):
        def gate(context):
            return context.header("X-Auth-Token") == "secret"

        app = build_app(registry, populator, access_gate=gate)
        async with TestClient(TestServer(app)) as client:
            resp = await client.get("/items")
            assert resp.status == 403
            assert await error_messages(resp) == ["Forbidden"]

            resp = await client.get("/items", headers={"X-Auth-Token": "secret"})
            assert resp.status == 200


class TestDatabases:
    """Named databases selected by header."""

    @pytest.mark.asyncio
    async def test_named_database_is_isolated(self, client):
        resp = await client.post("/items", json=new_item(), headers={DB_HEADER: "alpha"})
        assert resp.status == 201

        alpha = await (await client.get("/items", headers={DB_HEADER: "alpha"})).json()
        default = await (await client.get("/items")).json()

        assert len(alpha["items"]) == 9
        assert len(default["items"]) == 8

    @pytest.mark.asyncio
    async def test_database_limit(self, client):
        for name in ("one", "two"):
            assert (await client.get("/items", headers={DB_HEADER: name})).status == 200

        resp = await client.get("/items", headers={DB_HEADER: "three"})

        assert resp.status == 400
        assert await error_messages(resp) == [
            "ERROR: Cannot create database, maximum limit of 3 reached"
        ]

    @pytest.mark.asyncio
    async def test_unrouted_requests_use_no_database_slot(self, client):
        for name in ("ghost", "phantom", "spectre"):
            assert (await client.get("/nope", headers={DB_HEADER: name})).status == 404

        for name in ("one", "two"):
            assert (await client.get("/items", headers={DB_HEADER: name})).status == 200


class TestPrefix:
    """API path prefix."""

    @pytest.mark.asyncio
    async def test_prefixed_routes(self, registry, populator):
        app = build_app(registry, populator, prefix="/simpleapi")
        async with TestClient(TestServer(app)) as client:
            resp = await client.post("/simpleapi/items", json=new_item())
            assert resp.status == 201
            assert resp.headers["Location"] == "/simpleapi/items/9"

            assert (await client.get("/items")).status == 404


class TestServerErrors:
    """Unexpected failures inside dispatch."""

    @pytest.mark.asyncio
    async def test_internal_error_hides_details(self, registry, populator):
        def gate(context):
            raise RuntimeError("secret connection string")

        app = build_app(registry, populator, access_gate=gate)
        async with TestClient(TestServer(app)) as client:
            resp = await client.get("/items")

            assert resp.status == 500
            assert await error_messages(resp) == ["Internal server error"]

    def test_app_keys(self, registry, populator):
        app = build_app(registry, populator)

        assert isinstance(app[DISPATCHER_KEY], ApiDispatcher)
        assert isinstance(app[EXECUTOR_KEY], ThreadPoolExecutor)
        app[EXECUTOR_KEY].shutdown()
