"""Tests for unifi_mcp._core.transport module."""

import pytest
import requests
from unittest.mock import MagicMock

from unifi_mcp._core.transport import DEFAULT_HEADERS, Transport, TransportResponse


def _response(status=200, json_body=None, text="", content=b"x", headers=None):
    response = MagicMock()
    response.status_code = status
    response.headers = headers or {"Content-Type": "application/json"}
    response.content = content
    response.text = text
    if json_body is None:
        response.json.side_effect = ValueError("not json")
    else:
        response.json.return_value = json_body
    return response


class TestTransportResponse:
    """Tests for TransportResponse."""

    def test_ok_below_400(self):
        assert TransportResponse(200).ok is True
        assert TransportResponse(302).ok is True

    def test_not_ok_from_400(self):
        assert TransportResponse(401).ok is False
        assert TransportResponse(503).ok is False


class TestTransport:
    """Tests for Transport."""

    def test_session_verify_follows_config(self):
        session = MagicMock()
        Transport(verify_ssl=True, session=session)
        assert session.verify is True

    @pytest.mark.asyncio
    async def test_send_decodes_json(self):
        session = MagicMock()
        session.request.return_value = _response(json_body={"meta": {"rc": "ok"}, "data": []})
        transport = Transport(session=session)

        response = await transport.send(
            "get",
            "https://192.168.1.1/api/system",
            headers={"X-API-KEY": "key"},
            params={"limit": 5},
            timeout=5.0,
        )

        assert response.status == 200
        assert response.body == {"meta": {"rc": "ok"}, "data": []}
        args, kwargs = session.request.call_args
        assert args == ("GET", "https://192.168.1.1/api/system")
        assert kwargs["headers"] == {**DEFAULT_HEADERS, "X-API-KEY": "key"}
        assert kwargs["params"] == {"limit": 5}
        assert kwargs["timeout"] == 5.0
        assert kwargs["verify"] is False

    @pytest.mark.asyncio
    async def test_send_returns_text_for_non_json(self):
        session = MagicMock()
        session.request.return_value = _response(status=502, text="Bad Gateway")
        transport = Transport(session=session)

        response = await transport.send("GET", "https://192.168.1.1/status")

        assert response.status == 502
        assert response.body == "Bad Gateway"

    @pytest.mark.asyncio
    async def test_send_empty_body_is_none(self):
        session = MagicMock()
        session.request.return_value = _response(status=204, content=b"")
        transport = Transport(session=session)

        response = await transport.send("DELETE", "https://192.168.1.1/x")

        assert response.body is None

    @pytest.mark.asyncio
    async def test_send_raises_raw_requests_errors(self):
        """Classification happens in the client, not the transport."""
        session = MagicMock()
        session.request.side_effect = requests.exceptions.ConnectionError("refused")
        transport = Transport(session=session)

        with pytest.raises(requests.exceptions.ConnectionError):
            await transport.send("GET", "https://192.168.1.1/status")

    def test_close_closes_session(self):
        session = MagicMock()
        Transport(session=session).close()
        session.close.assert_called_once()
