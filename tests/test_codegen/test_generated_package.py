"""End-to-end tests: generate a package, import it, and serve it with Starlette.

Each test writes the package under its own tmp_path and imports it under a
unique name (see the ``load_generated`` fixture in conftest.py).
"""

from __future__ import annotations

from types import ModuleType
from typing import Any

import pytest
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.responses import Response
from starlette.routing import Route
from starlette.testclient import TestClient

from routegen.pipeline import generate
from routegen.runtime import route


@pytest.fixture
def blog(load_generated, blog_routes: str, blog_raw: dict[str, Any]) -> ModuleType:
    return load_generated(generate(blog_routes, blog_raw, source="blog.routes"))


@pytest.fixture
def shop(load_generated, shop_routes: str, shop_raw: dict[str, Any]) -> ModuleType:
    return load_generated(generate(shop_routes, shop_raw, source="shop.routes"))


def _client(*routes: Route) -> TestClient:
    return TestClient(Starlette(routes=list(routes)))


# ---------------------------------------------------------------------------
# Generated types
# ---------------------------------------------------------------------------


class TestGeneratedTypes:
    def test_package_structure(self, blog: ModuleType) -> None:
        assert blog.__all__ == ["schemas", "posts"]
        assert blog.posts.__all__ == ["GetPost", "CreateComment", "NewComment"]

    def test_route_class_metadata(self, blog: ModuleType) -> None:
        get_post = blog.posts.GetPost
        assert get_post.path() == "/users/:user_id/posts/:post_id"
        assert get_post.ROUTE_PATH == "/users/:user_id/posts/:post_id"
        assert get_post.DOCUMENT_PATH == "/users/{user_id}/posts/{post_id}"
        assert get_post.METHOD == "GET"
        assert set(get_post.model_fields) == {"user_id", "post_id", "include_comments", "amount"}

    def test_route_objects_validate(self, blog: ModuleType) -> None:
        req = blog.posts.GetPost(user_id="u1", post_id=[1, 2], amount=3)
        assert req.include_comments is None
        with pytest.raises(ValidationError):
            blog.posts.GetPost(user_id="u1", post_id=[1])

    def test_component_record(self, blog: ModuleType) -> None:
        schemas = blog.schemas
        obj = schemas.ObjectSchema.model_validate(
            {"req_id": 1, "name_ref": "n", "inline_object": {"id": 2}}
        )
        assert isinstance(obj.inline_object, schemas.NestedInlineObject)
        assert obj.id is None
        with pytest.raises(ValidationError):
            schemas.ObjectSchema.model_validate({"id": 1})

    def test_component_choice(self, blog: ModuleType) -> None:
        choice = blog.schemas.OneOfSchema
        assert choice.VARIANTS == ("NumberTitle", "String", "BooleanAlias")
        assert choice.model_validate("abc").value == "abc"
        assert choice.model_validate(1.5).value == 1.5

    @pytest.mark.parametrize(
        "value, tag",
        [(1.5, "NumberTitle"), (2, "NumberTitle"), ("abc", "String"), (True, "BooleanAlias")],
    )
    def test_component_choice_records_tag(self, blog: ModuleType, value: Any, tag: str) -> None:
        parsed = blog.schemas.OneOfSchema.model_validate(value)
        assert parsed.tag == tag
        assert parsed.value == value
        assert parsed.model_dump() == value

    def test_component_choice_from_variant(self, blog: ModuleType) -> None:
        choice = blog.schemas.OneOfSchema
        built = choice.from_variant("NumberTitle", 1.0)
        assert built.tag == "NumberTitle"
        assert choice.model_validate(built) is built
        with pytest.raises(KeyError):
            choice.from_variant("Integer", 1)
        with pytest.raises(ValidationError):
            choice.from_variant("BooleanAlias", [1])

    def test_component_choice_rejects_other_values(self, blog: ModuleType) -> None:
        with pytest.raises(ValidationError):
            blog.schemas.OneOfSchema.model_validate([1, 2])

    def test_same_typed_alternatives_keep_their_tag(self, load_generated) -> None:
        raw = {
            "openapi": "3.0.0",
            "paths": {},
            "components": {
                "schemas": {
                    "Celsius": {"type": "number"},
                    "Fahrenheit": {"type": "number"},
                    "Reading": {
                        "oneOf": [
                            {"$ref": "#/components/schemas/Celsius"},
                            {"$ref": "#/components/schemas/Fahrenheit"},
                        ]
                    },
                }
            },
        }
        reading = load_generated(generate('path = "x";', raw)).schemas.Reading
        assert reading.model_validate(20.0).tag == "Celsius"
        fahrenheit = reading.from_variant("Fahrenheit", 68.0)
        assert (fahrenheit.tag, fahrenheit.value) == ("Fahrenheit", 68.0)
        assert fahrenheit.model_dump_json() == "68.0"

    def test_private_route_still_defined(self, shop: ModuleType) -> None:
        assert "DeleteItem" not in shop.items.__all__
        assert shop.items.DeleteItem.METHOD == "DELETE"

    def test_aliased_fields_accept_both_names(self, shop: ModuleType) -> None:
        list_items = shop.items.ListItems
        assert list_items(page_size=5).page_size == 5
        assert list_items.model_validate({"page-size": 6}).page_size == 6


# ---------------------------------------------------------------------------
# Serving: path, query and JSON bodies
# ---------------------------------------------------------------------------


class TestBlogRoutes:
    @pytest.fixture
    def client(self, blog: ModuleType) -> TestClient:
        async def get_post(req):
            return {
                "user": req.user_id,
                "posts": req.post_id,
                "comments": req.include_comments,
                "amount": req.amount,
            }

        async def create_comment(req):
            return {"content": req.body.content, "amount": req.amount}

        return _client(
            blog.posts.GetPost.method_router(get_post),
            blog.posts.CreateComment.method_router(create_comment),
        )

    def test_path_and_query(self, client: TestClient) -> None:
        response = client.get("/users/u1/posts/1,2?amount=3&include_comments=true")
        assert response.status_code == 200
        assert response.json() == {"user": "u1", "posts": [1, 2], "comments": True, "amount": 3}

    def test_bad_path_parameter(self, client: TestClient) -> None:
        response = client.get("/users/u1/posts/x?amount=3")
        assert response.status_code == 400
        body = response.json()
        assert body["rejection"] == "path"
        assert body["detail"][0]["loc"] == ["post_id", 0]

    def test_missing_query_parameter(self, client: TestClient) -> None:
        response = client.get("/users/u1/posts/1")
        assert response.status_code == 400
        body = response.json()
        assert body["rejection"] == "query"
        assert body["detail"][0]["loc"] == ["amount"]
        assert body["detail"][0]["type"] == "missing"

    def test_json_body(self, client: TestClient) -> None:
        response = client.post("/users/u1/posts/1/comment", json={"content": "Nice post"})
        assert response.status_code == 200
        assert response.json() == {"content": "Nice post", "amount": None}

    def test_json_validation_failure(self, client: TestClient) -> None:
        response = client.post("/users/u1/posts/1/comment", json={})
        assert response.status_code == 422
        body = response.json()
        assert body["rejection"] == "json"
        assert body["detail"][0]["loc"] == ["content"]

    def test_malformed_json(self, client: TestClient) -> None:
        response = client.post(
            "/users/u1/posts/1/comment",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["rejection"] == "json"

    def test_json_requires_content_type(self, client: TestClient) -> None:
        response = client.post(
            "/users/u1/posts/1/comment",
            content=b'{"content": "x"}',
            headers={"content-type": "text/plain"},
        )
        assert response.status_code == 415
        assert response.json()["rejection"] == "json"

    def test_wrong_method_not_routed(self, client: TestClient) -> None:
        assert client.delete("/users/u1/posts/1?amount=1").status_code == 405


# ---------------------------------------------------------------------------
# Serving: aliases, component bodies, forms and raw bodies
# ---------------------------------------------------------------------------


class TestShopRoutes:
    @pytest.fixture
    def client(self, shop: ModuleType) -> TestClient:
        items = shop.items
        uploads = shop.items.uploads

        def index(req):
            return {"ok": True}

        async def list_items(req):
            return req

        async def create_item(req):
            return {"type": type(req.body).__name__, "item": req.body}

        async def update_item(req):
            return {"id": req.item_id, "name": req.body.name, "price": req.body.price}

        async def upload_image(req):
            form = req.body
            return {"item": req.item_id, "fields": sorted(form.keys()), "caption": form["caption"]}

        async def add_note(req):
            return {"note": req.body}

        async def replace_blob(req):
            return Response(req.body, media_type="application/octet-stream")

        return _client(
            shop.Index.method_router(index),
            items.ListItems.method_router(list_items),
            items.CreateItem.method_router(create_item),
            items.UpdateItem.method_router(update_item),
            uploads.UploadImage.method_router(upload_image),
            uploads.AddNote.method_router(add_note),
            uploads.ReplaceBlob.method_router(replace_blob),
        )

    def test_index_with_sync_handler(self, client: TestClient) -> None:
        response = client.get("/")
        assert response.status_code == 200
        assert response.json() == {"ok": True}

    def test_query_alias_and_repeated_values(self, client: TestClient) -> None:
        response = client.get("/items?page-size=10&tag=a&tag=b")
        assert response.status_code == 200
        assert response.json() == {"page-size": 10, "tag": ["a", "b"]}

    def test_component_body(self, client: TestClient) -> None:
        response = client.post("/items", json={"name": "Lamp", "price": 3})
        assert response.status_code == 200
        assert response.json() == {
            "type": "Item",
            "item": {"name": "Lamp", "price": 3.0, "tags": None},
        }

    def test_form_body(self, client: TestClient) -> None:
        response = client.put("/items/7", data={"name": "Lamp", "price": "9.5"})
        assert response.status_code == 200
        assert response.json() == {"id": 7, "name": "Lamp", "price": 9.5}

    def test_form_validation_failure(self, client: TestClient) -> None:
        response = client.put("/items/7", data={"price": "9.5"})
        assert response.status_code == 422
        assert response.json()["rejection"] == "form"

    def test_form_requires_content_type(self, client: TestClient) -> None:
        response = client.put("/items/7", json={"name": "Lamp"})
        assert response.status_code == 415
        assert response.json()["rejection"] == "form"

    def test_multipart_body(self, client: TestClient) -> None:
        response = client.post(
            "/items/7/image",
            data={"caption": "front"},
            files={"image": ("lamp.png", b"\x89PNG", "image/png")},
        )
        assert response.status_code == 200
        assert response.json() == {"item": 7, "fields": ["caption", "image"], "caption": "front"}

    def test_multipart_requires_content_type(self, client: TestClient) -> None:
        response = client.post("/items/7/image", json={})
        assert response.status_code == 415
        assert response.json()["rejection"] == "multipart"

    def test_text_body(self, client: TestClient) -> None:
        response = client.post(
            "/items/7/notes", content="Handle with care", headers={"content-type": "text/plain"}
        )
        assert response.json() == {"note": "Handle with care"}

    def test_invalid_utf8_text(self, client: TestClient) -> None:
        response = client.post(
            "/items/7/notes", content=b"\xff\xfe", headers={"content-type": "text/plain"}
        )
        assert response.status_code == 400
        assert response.json()["rejection"] == "text"

    def test_bytes_body(self, client: TestClient) -> None:
        response = client.patch("/items/7/blob", content=b"\x00\x01\x02")
        assert response.status_code == 200
        assert response.content == b"\x00\x01\x02"

    def test_path_rejection_before_body(self, client: TestClient) -> None:
        response = client.patch("/items/seven/blob", content=b"\x00")
        assert response.status_code == 400
        assert response.json()["rejection"] == "path"


# ---------------------------------------------------------------------------
# route() helper
# ---------------------------------------------------------------------------


class TestRouteHelper:
    def test_route_class_taken_from_annotation(self, shop: ModuleType) -> None:
        async def add_note(req):
            return {"note": req.body, "item": req.item_id}

        add_note.__annotations__ = {"req": shop.items.uploads.AddNote}
        registered = route(add_note)

        assert registered.path == "/items/{item_id}/notes"
        assert registered.name == "AddNote"
        response = _client(registered).post(
            "/items/3/notes", content="hi", headers={"content-type": "text/plain"}
        )
        assert response.json() == {"note": "hi", "item": 3}

    def test_unannotated_handler_rejected(self) -> None:
        async def handler(req):
            return None

        with pytest.raises(TypeError, match="must be annotated with a generated route class"):
            route(handler)

    def test_handler_without_parameters_rejected(self) -> None:
        async def handler():
            return None

        with pytest.raises(TypeError, match="must take the route object"):
            route(handler)
