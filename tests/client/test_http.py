import httpx
import pytest

from teamchat.client.http import ChatApiClient, ChatApiError


def client_with(handler):
    return ChatApiClient(base_url="http://test/api/chat", session_token="u-alice",
                         transport=httpx.MockTransport(handler))


async def test_sends_session_cookie_and_decodes_json():
    seen = {}

    def handler(request):
        seen["cookie"] = request.headers.get("cookie")
        seen["path"] = request.url.path
        return httpx.Response(200, json=[{"id": "c-1"}])

    async with client_with(handler) as api:
        assert await api.get("/conversations") == [{"id": "c-1"}]

    assert "teamchat_session=u-alice" in seen["cookie"]
    assert seen["path"] == "/api/chat/conversations"


async def test_server_error_string_is_kept_verbatim():
    def handler(request):
        return httpx.Response(403, json={"error": "Only the sender can edit this message"})

    async with client_with(handler) as api:
        with pytest.raises(ChatApiError) as exc_info:
            await api.patch("/conversations/c-1/messages/m-1", json={"content": "x"})

    assert exc_info.value.message == "Only the sender can edit this message"
    assert exc_info.value.status_code == 403


async def test_transport_failure_has_no_server_message():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with client_with(handler) as api:
        with pytest.raises(ChatApiError) as exc_info:
            await api.get("/users")

    assert exc_info.value.message is None
    assert exc_info.value.status_code is None


async def test_non_json_error_body():
    def handler(request):
        return httpx.Response(502, text="Bad Gateway")

    async with client_with(handler) as api:
        with pytest.raises(ChatApiError) as exc_info:
            await api.get("/users")

    assert exc_info.value.message is None
    assert exc_info.value.status_code == 502
