"""Tests for routegen.runtime extraction helpers."""

from __future__ import annotations

import asyncio
import json
from typing import Any, ClassVar, Optional
from urllib.parse import urlencode

import pytest
from pydantic import BaseModel, ConfigDict, Field, RootModel
from starlette.requests import Request

from routegen import runtime
from routegen.models import RejectionKind
from routegen.runtime import ExtractionError, Rejection

type Tags = list[str]


class PathParams(BaseModel):
    user_id: str
    post_id: list[int]


class QueryParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page_size: Optional[int] = Field(default=None, alias="page-size")
    tag: Optional[Tags] = None


class Comment(BaseModel):
    content: str


def _request(
    body: bytes = b"",
    content_type: Optional[str] = None,
    query: str = "",
    path_params: Optional[dict[str, str]] = None,
    method: str = "POST",
) -> Request:
    headers = []
    if content_type is not None:
        headers.append((b"content-type", content_type.encode()))
    scope = {
        "type": "http",
        "method": method,
        "path": "/",
        "query_string": query.encode(),
        "headers": headers,
        "path_params": path_params or {},
    }
    sent = False

    async def receive() -> dict[str, Any]:
        nonlocal sent
        if sent:
            return {"type": "http.disconnect"}
        sent = True
        return {"type": "http.request", "body": body, "more_body": False}

    return Request(scope, receive)


# ---------------------------------------------------------------------------
# Path and query
# ---------------------------------------------------------------------------


class TestExtractPath:
    def test_sequence_split_on_commas(self) -> None:
        request = _request(path_params={"user_id": "u1", "post_id": "1,2,3"})
        extracted = runtime.extract_path(request, PathParams)
        assert extracted == PathParams(user_id="u1", post_id=[1, 2, 3])

    def test_empty_sequence(self) -> None:
        request = _request(path_params={"user_id": "u1", "post_id": ""})
        assert runtime.extract_path(request, PathParams).post_id == []

    def test_invalid_value(self) -> None:
        request = _request(path_params={"user_id": "u1", "post_id": "1,x"})
        with pytest.raises(ExtractionError) as exc_info:
            runtime.extract_path(request, PathParams)
        assert exc_info.value.status_code == 400
        assert exc_info.value.detail[0]["loc"] == ["post_id", 1]


class TestExtractQuery:
    def test_alias_and_repeated_keys(self) -> None:
        request = _request(query="page-size=20&tag=a&tag=b&other=1")
        extracted = runtime.extract_query(request, QueryParams)
        assert extracted.page_size == 20
        assert extracted.tag == ["a", "b"]

    def test_absent_keys_are_none(self) -> None:
        extracted = runtime.extract_query(_request(), QueryParams)
        assert extracted.page_size is None
        assert extracted.tag is None

    def test_invalid_value(self) -> None:
        with pytest.raises(ExtractionError) as exc_info:
            runtime.extract_query(_request(query="page-size=many"), QueryParams)
        assert exc_info.value.status_code == 400
        assert exc_info.value.detail[0]["loc"] == ["page-size"]


# ---------------------------------------------------------------------------
# Bodies
# ---------------------------------------------------------------------------


class TestExtractJson:
    def test_model_body(self) -> None:
        request = _request(b'{"content": "hi"}', "application/json")
        assert asyncio.run(runtime.extract_json(request, Comment)) == Comment(content="hi")

    def test_charset_parameter_and_json_suffix(self) -> None:
        for content_type in ("application/json; charset=utf-8", "application/problem+json"):
            request = _request(b'{"content": "hi"}', content_type)
            assert asyncio.run(runtime.extract_json(request, Comment)).content == "hi"

    def test_non_model_body(self) -> None:
        request = _request(b"[1, 2]", "application/json")
        assert asyncio.run(runtime.extract_json(request, list[int])) == [1, 2]

    def test_wrong_content_type(self) -> None:
        request = _request(b"{}", "text/plain")
        with pytest.raises(ExtractionError) as exc_info:
            asyncio.run(runtime.extract_json(request, Comment))
        assert exc_info.value.status_code == 415

    def test_missing_content_type(self) -> None:
        with pytest.raises(ExtractionError) as exc_info:
            asyncio.run(runtime.extract_json(_request(b"{}"), Comment))
        assert exc_info.value.status_code == 415

    def test_syntax_error(self) -> None:
        request = _request(b"{", "application/json")
        with pytest.raises(ExtractionError, match="Failed to parse the request body as JSON"):
            asyncio.run(runtime.extract_json(request, Comment))

    def test_validation_error(self) -> None:
        request = _request(b'{"content": 5}', "application/json")
        with pytest.raises(ExtractionError) as exc_info:
            asyncio.run(runtime.extract_json(request, Comment))
        assert exc_info.value.status_code == 422
        assert exc_info.value.detail[0]["loc"] == ["content"]
        json.dumps(exc_info.value.detail)


class TestExtractForm:
    def test_model_body(self) -> None:
        body = urlencode([("page-size", "3"), ("tag", "a"), ("tag", "b")]).encode()
        request = _request(body, "application/x-www-form-urlencoded")
        extracted = asyncio.run(runtime.extract_form(request, QueryParams))
        assert extracted.page_size == 3
        assert extracted.tag == ["a", "b"]

    def test_optional_model_body(self) -> None:
        request = _request(b"content=hello", "application/x-www-form-urlencoded")
        assert asyncio.run(runtime.extract_form(request, Optional[Comment])) == Comment(
            content="hello"
        )

    def test_mapping_body(self) -> None:
        request = _request(b"a=1&b=2", "application/x-www-form-urlencoded")
        assert asyncio.run(runtime.extract_form(request, dict[str, str])) == {"a": "1", "b": "2"}

    def test_wrong_content_type(self) -> None:
        request = _request(b"content=hello", "application/json")
        with pytest.raises(ExtractionError) as exc_info:
            asyncio.run(runtime.extract_form(request, Comment))
        assert exc_info.value.status_code == 415

    def test_validation_error(self) -> None:
        request = _request(b"other=1", "application/x-www-form-urlencoded")
        with pytest.raises(ExtractionError) as exc_info:
            asyncio.run(runtime.extract_form(request, Comment))
        assert exc_info.value.status_code == 422


class TestExtractMultipart:
    def test_wrong_content_type(self) -> None:
        with pytest.raises(ExtractionError) as exc_info:
            asyncio.run(runtime.extract_multipart(_request(b"", "text/plain")))
        assert exc_info.value.status_code == 415

    def test_parts(self) -> None:
        boundary = "xyz"
        body = (
            f"--{boundary}\r\n"
            'Content-Disposition: form-data; name="caption"\r\n\r\n'
            "front\r\n"
            f"--{boundary}--\r\n"
        ).encode()
        request = _request(body, f"multipart/form-data; boundary={boundary}")
        form = asyncio.run(runtime.extract_multipart(request))
        assert form["caption"] == "front"


class TestExtractRaw:
    def test_text(self) -> None:
        request = _request("Grüße".encode("utf-8"))
        assert asyncio.run(runtime.extract_text(request)) == "Grüße"

    def test_invalid_utf8(self) -> None:
        with pytest.raises(ExtractionError, match="not valid UTF-8") as exc_info:
            asyncio.run(runtime.extract_text(_request(b"\xff")))
        assert exc_info.value.status_code == 400

    def test_bytes(self) -> None:
        assert asyncio.run(runtime.extract_bytes(_request(b"\x00\xff"))) == b"\x00\xff"


# ---------------------------------------------------------------------------
# Rejection
# ---------------------------------------------------------------------------


class TestRejection:
    @pytest.mark.parametrize(
        "kind, status",
        [
            (RejectionKind.PATH, 400),
            (RejectionKind.QUERY, 400),
            (RejectionKind.JSON, 422),
            (RejectionKind.FORM, 422),
            (RejectionKind.TEXT, 400),
            (RejectionKind.OTHER, 500),
        ],
    )
    def test_default_status(self, kind: RejectionKind, status: int) -> None:
        assert Rejection(kind).status_code == status

    def test_from_error_keeps_status(self) -> None:
        rejection = Rejection.from_error(RejectionKind.JSON, ExtractionError(415, "nope"))
        assert rejection.status_code == 415
        assert rejection.detail == "nope"

    def test_to_response(self) -> None:
        response = Rejection(RejectionKind.QUERY, detail="bad").to_response()
        assert response.status_code == 400
        assert json.loads(response.body) == {"rejection": "query", "detail": "bad"}


class TestUnwrap:
    def test_strips_aliases_and_optional(self) -> None:
        assert runtime._unwrap(Optional[Tags]) == list[str]
        assert runtime._unwrap(Comment | None) is Comment
        assert runtime._unwrap(int) is int

    def test_keeps_real_unions(self) -> None:
        assert runtime._unwrap(int | str) == int | str


# ---------------------------------------------------------------------------
# Choices
# ---------------------------------------------------------------------------


class _Amount(RootModel):
    TAG: ClassVar[str] = "Amount"

    root: float


class _Label(RootModel):
    TAG: ClassVar[str] = "Label"

    root: str


class _Flag(RootModel):
    TAG: ClassVar[str] = "Flag"

    root: bool


class _Comment(RootModel):
    TAG: ClassVar[str] = "Comment"

    root: Comment


class TestChoiceDiscriminator:
    @pytest.fixture
    def discriminate(self):
        return runtime.choice_discriminator(_Amount, _Label, _Flag, _Comment)

    @pytest.mark.parametrize(
        "value, tag",
        [
            (1.5, "Amount"),
            (3, "Amount"),
            ("abc", "Label"),
            (True, "Flag"),
            ({"content": "hi"}, "Comment"),
        ],
    )
    def test_strict_match_wins(self, discriminate, value: Any, tag: str) -> None:
        assert discriminate(value) == tag

    def test_wrapper_instance_keeps_its_tag(self, discriminate) -> None:
        assert discriminate(_Flag(True)) == "Flag"

    def test_falls_back_to_lax_match(self) -> None:
        discriminate = runtime.choice_discriminator(_Comment, _Amount)
        assert discriminate("2.5") == "Amount"

    def test_first_variant_wins_among_equals(self) -> None:
        assert runtime.choice_discriminator(_Label, _Amount)(1) == "Amount"
        assert runtime.choice_discriminator(_Amount, _Flag)(1) == "Amount"

    def test_no_match(self, discriminate) -> None:
        assert discriminate([1, 2]) is None
