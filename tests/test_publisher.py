"""Circlo publisher over an httpx mock transport."""

import json

import httpx
import pytest

from contentfactory.orchestrator.errors import StageError
from contentfactory.services.publisher import CREATE_POST_PATH, CircloPublisher


def _publisher(handler, token="secret"):
    return CircloPublisher(
        base_url="https://circlo.test/",
        api_token=token,
        profile="travel-bot",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


async def test_publish_sends_post_and_returns_id():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(201, json={"post": {"id": 981}})

    result = await _publisher(handler).publish(
        niche="Travel",
        caption="Sunset over the bay #DNA",
        media_url="https://media.test/post_1.png",
        keywords=["sunset"],
    )

    assert result.external_post_id == "981"
    request = requests[0]
    assert request.url == f"https://circlo.test{CREATE_POST_PATH}"
    assert request.headers["Authorization"] == "Bearer secret"
    assert json.loads(request.content) == {
        "profile": "travel-bot",
        "niche": "Travel",
        "media_type": "image",
        "media_source": "https://media.test/post_1.png",
        "caption": "Sunset over the bay #DNA",
        "keywords": ["sunset"],
    }


async def test_no_token_sends_no_authorization_header():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"post": {"id": "abc"}})

    await _publisher(handler, token="").publish(niche="Music", caption="c", media_url="u")

    assert seen["auth"] is None


@pytest.mark.parametrize("status, retryable", [(400, False), (503, True)])
async def test_http_errors_become_stage_errors(status, retryable):
    def handler(request):
        return httpx.Response(status, text="nope")

    with pytest.raises(StageError) as exc_info:
        await _publisher(handler).publish(niche="Music", caption="c", media_url="u")

    assert exc_info.value.retryable is retryable
    assert f"HTTP {status}" in str(exc_info.value)


async def test_response_without_post_id_is_rejected():
    def handler(request):
        return httpx.Response(200, json={"ok": True})

    with pytest.raises(StageError, match="no post id"):
        await _publisher(handler).publish(niche="Music", caption="c", media_url="u")


async def test_transport_failure_becomes_stage_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(StageError, match="connection refused"):
        await _publisher(handler).publish(niche="Music", caption="c", media_url="u")
