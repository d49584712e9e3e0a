"""Unit tests for the request client in client.py."""

import itertools
import json
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
import requests
from urllib3.exceptions import ReadTimeoutError

from roam_cli.client import RoamClient, mask_token, send
from roam_cli.config import EndpointConfig
from roam_cli.errors import (
    HTTPStatusError,
    RedirectError,
    RequestTimeoutError,
    ResponseParseError,
    TransportError,
)

POST_PATH = "roam_cli.client.requests.post"
CONFIG = EndpointConfig(graph_name="test-graph", api_token="test-token-1234")
QUERY_URL = "https://api.roamresearch.com/api/graph/test-graph/q"


def make_response(
    status_code: int = 200,
    text: str = "",
    headers: dict[str, str] | None = None,
    content: bytes | None = None,
) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    response.content = text.encode("utf-8") if content is None else content
    response.headers = headers or {}
    return response


def fake_clock(*values: float) -> Any:
    """Monotonic clock that returns ``values`` and then repeats the last one."""
    return itertools.chain(values, itertools.repeat(values[-1]))


class TestMaskToken:
    """Tests for mask_token."""

    def test_mask_long_token(self) -> None:
        assert mask_token("abcdefghij") == "abcd...ghij"

    def test_mask_short_token(self) -> None:
        assert mask_token("short") == "***"
        assert mask_token("12345678") == "***"


class TestSendSuccess:
    """Tests for send on the direct (no redirect) path."""

    @patch(POST_PATH)
    def test_send_returns_parsed_body(self, mock_post: MagicMock) -> None:
        """Test a 200 response is parsed as JSON."""
        mock_post.return_value = make_response(200, '{"result": [["uid1"]]}')

        result = send(CONFIG, {"query": "[:find ?e]"})

        assert result == {"result": [["uid1"]]}
        mock_post.assert_called_once()

    @patch(POST_PATH)
    def test_send_request_shape(self, mock_post: MagicMock) -> None:
        """Test URL, headers, payload and options of the outgoing request."""
        mock_post.return_value = make_response(200, "{}")
        envelope = {"query": "[:find ?e]", "args": ["Page"]}

        send(CONFIG, envelope)

        args, kwargs = mock_post.call_args
        assert args[0] == QUERY_URL
        assert json.loads(kwargs["data"]) == envelope
        headers = kwargs["headers"]
        assert headers["Content-Type"] == "application/json"
        assert headers["Accept"] == "application/json"
        assert headers["Authorization"] == "Bearer test-token-1234"
        assert headers["Content-Length"] == str(len(kwargs["data"]))
        assert kwargs["allow_redirects"] is False
        assert kwargs["timeout"] == CONFIG.timeout

    @patch(POST_PATH)
    def test_send_write_endpoint(self, mock_post: MagicMock) -> None:
        """Test the endpoint argument selects the path below the graph."""
        mock_post.return_value = make_response(200, "")

        send(CONFIG, {"action": "create-page"}, endpoint="write")

        assert mock_post.call_args[0][0] == (
            "https://api.roamresearch.com/api/graph/test-graph/write"
        )

    @patch(POST_PATH)
    def test_send_empty_body_is_empty_object(self, mock_post: MagicMock) -> None:
        """Test an empty 200 body maps to an empty object, not a parse error."""
        mock_post.return_value = make_response(200, "")

        assert send(CONFIG, {"action": "create-page"}) == {}

    @patch(POST_PATH)
    def test_send_parses_utf8_without_charset(self, mock_post: MagicMock) -> None:
        """Test a 200 body is decoded as UTF-8 even when text guesses Latin-1."""
        raw = json.dumps({"result": [["Caf\u00e9"]]}, ensure_ascii=False).encode()
        mock_post.return_value = make_response(
            200,
            text=raw.decode("latin-1"),
            headers={"Content-Type": "text/plain"},
            content=raw,
        )

        assert send(CONFIG, {"query": "q"}) == {"result": [["Caf\u00e9"]]}

    @patch(POST_PATH)
    def test_send_invalid_utf8(self, mock_post: MagicMock) -> None:
        """Test undecodable 200 bytes raise ResponseParseError."""
        mock_post.return_value = make_response(200, content=b"\xff\xfe{")

        with pytest.raises(ResponseParseError):
            send(CONFIG, {"query": "q"})

    @patch(POST_PATH)
    def test_send_invalid_json(self, mock_post: MagicMock) -> None:
        """Test an invalid 200 body raises ResponseParseError."""
        mock_post.return_value = make_response(200, "not json")

        with pytest.raises(ResponseParseError) as exc_info:
            send(CONFIG, {"query": "q"})

        assert isinstance(exc_info.value.__cause__, json.JSONDecodeError)


class TestSendHTTPErrors:
    """Tests for non-200 final responses."""

    @pytest.mark.parametrize("status", [201, 400, 401, 429, 500, 503])
    @patch(POST_PATH)
    def test_send_non_200_raises(self, mock_post: MagicMock, status: int) -> None:
        """Test any status other than 200 raises HTTPStatusError."""
        mock_post.return_value = make_response(status, "failure")

        with pytest.raises(HTTPStatusError) as exc_info:
            send(CONFIG, {"query": "q"})

        assert exc_info.value.status_code == status
        assert exc_info.value.body == "failure"

    @patch(POST_PATH)
    def test_send_keeps_raw_error_body(self, mock_post: MagicMock) -> None:
        """Test the error body is preserved unparsed."""
        body = '{"message": "Page with title Foo already exists"}'
        mock_post.return_value = make_response(400, body)

        with pytest.raises(HTTPStatusError) as exc_info:
            send(CONFIG, {"action": "create-page"})

        assert exc_info.value.body == body
        assert str(exc_info.value) == f"HTTP 400: {body}"

    @patch(POST_PATH)
    def test_send_307_not_followed(self, mock_post: MagicMock) -> None:
        """Test a 307 is treated as a final non-200 response."""
        mock_post.return_value = make_response(
            307, "", {"Location": "https://host2/path2"}
        )

        with pytest.raises(HTTPStatusError) as exc_info:
            send(CONFIG, {"query": "q"})

        assert exc_info.value.status_code == 307
        mock_post.assert_called_once()


class TestSendRedirect:
    """Tests for the single redirect hop."""

    @pytest.mark.parametrize("status", [301, 302, 308])
    @patch(POST_PATH)
    def test_redirect_followed_once(self, mock_post: MagicMock, status: int) -> None:
        """Test a redirect is re-posted to the Location target."""
        mock_post.side_effect = [
            make_response(status, "", {"Location": "https://host2/path2"}),
            make_response(200, '{"result": []}'),
        ]

        result = send(CONFIG, {"query": "q"})

        assert result == {"result": []}
        assert mock_post.call_count == 2
        first, second = mock_post.call_args_list
        assert second[0][0] == "https://host2/path2"
        assert second[1]["data"] == first[1]["data"]
        assert second[1]["headers"] == first[1]["headers"]
        assert second[1]["allow_redirects"] is False

    @patch(POST_PATH)
    def test_redirect_keeps_port_and_query(self, mock_post: MagicMock) -> None:
        """Test the full Location URL is used for the second hop."""
        location = "https://peer-3.api.roamresearch.com:8443/api/graph/g/q?x=1"
        mock_post.side_effect = [
            make_response(308, "", {"Location": location}),
            make_response(200, "{}"),
        ]

        send(CONFIG, {"query": "q"})

        assert mock_post.call_args_list[1][0][0] == location

    @patch(POST_PATH)
    def test_second_redirect_is_final(self, mock_post: MagicMock) -> None:
        """Test only one hop is followed: 301 -> 301 surfaces as HTTP 301."""
        mock_post.side_effect = [
            make_response(301, "", {"Location": "https://host2/path2"}),
            make_response(301, "moved again", {"Location": "https://host3/p"}),
            make_response(200, "{}"),
        ]

        with pytest.raises(HTTPStatusError) as exc_info:
            send(CONFIG, {"query": "q"})

        assert exc_info.value.status_code == 301
        assert exc_info.value.body == "moved again"
        assert mock_post.call_count == 2

    @patch(POST_PATH)
    def test_redirect_without_location(self, mock_post: MagicMock) -> None:
        """Test a redirect with no Location header raises RedirectError."""
        mock_post.return_value = make_response(301, "")

        with pytest.raises(RedirectError) as exc_info:
            send(CONFIG, {"query": "q"})

        assert "without Location header" in str(exc_info.value)

    @patch(POST_PATH)
    def test_redirect_relative_location(self, mock_post: MagicMock) -> None:
        """Test a non-absolute Location raises RedirectError."""
        mock_post.return_value = make_response(302, "", {"Location": "/other/path"})

        with pytest.raises(RedirectError) as exc_info:
            send(CONFIG, {"query": "q"})

        assert "Could not parse redirect URL" in str(exc_info.value)
        mock_post.assert_called_once()

    @patch("roam_cli.client.time.monotonic")
    @patch(POST_PATH)
    def test_redirect_uses_remaining_budget(
        self, mock_post: MagicMock, mock_monotonic: MagicMock
    ) -> None:
        """Test the redirect hop only gets what is left of the timeout."""
        mock_monotonic.side_effect = fake_clock(100.0, 112.5)
        mock_post.side_effect = [
            make_response(301, "", {"Location": "https://host2/path2"}),
            make_response(200, "{}"),
        ]

        send(CONFIG, {"query": "q"})

        assert mock_post.call_args_list[0][1]["timeout"] == 30.0
        assert mock_post.call_args_list[1][1]["timeout"] == pytest.approx(17.5)

    @patch("roam_cli.client.time.monotonic")
    @patch(POST_PATH)
    def test_redirect_with_budget_exhausted(
        self, mock_post: MagicMock, mock_monotonic: MagicMock
    ) -> None:
        """Test no second request is made once the budget is spent."""
        mock_monotonic.side_effect = fake_clock(100.0, 131.0)
        mock_post.return_value = make_response(
            301, "", {"Location": "https://host2/path2"}
        )

        with pytest.raises(RequestTimeoutError):
            send(CONFIG, {"query": "q"})

        mock_post.assert_called_once()


class TestSendTransportErrors:
    """Tests for timeout and connection failures."""

    @pytest.mark.parametrize(
        "error",
        [
            requests.exceptions.ReadTimeout("read timed out"),
            requests.exceptions.ConnectTimeout("connect timed out"),
            requests.exceptions.ConnectionError(
                ReadTimeoutError(None, QUERY_URL, "Read timed out.")  # type: ignore[arg-type]
            ),
        ],
    )
    @patch(POST_PATH)
    def test_timeouts(self, mock_post: MagicMock, error: Exception) -> None:
        """Test every flavour of timeout surfaces as RequestTimeoutError."""
        mock_post.side_effect = error

        with pytest.raises(RequestTimeoutError) as exc_info:
            send(CONFIG, {"query": "q"})

        assert exc_info.value.__cause__ is error

    @pytest.mark.parametrize(
        "error",
        [
            requests.exceptions.ConnectionError("connection refused"),
            requests.exceptions.ChunkedEncodingError("connection dropped"),
        ],
    )
    @patch(POST_PATH)
    def test_transport_errors(self, mock_post: MagicMock, error: Exception) -> None:
        """Test connection failures surface as TransportError."""
        mock_post.side_effect = error

        with pytest.raises(TransportError) as exc_info:
            send(CONFIG, {"query": "q"})

        assert exc_info.value.__cause__ is error

    @patch(POST_PATH)
    def test_timeout_on_redirect_hop(self, mock_post: MagicMock) -> None:
        """Test a timeout on the second hop is still a timeout."""
        mock_post.side_effect = [
            make_response(301, "", {"Location": "https://host2/path2"}),
            requests.exceptions.ReadTimeout("read timed out"),
        ]

        with pytest.raises(RequestTimeoutError):
            send(CONFIG, {"query": "q"})


class TestRoamClient:
    """Tests for the RoamClient wrapper."""

    @patch(POST_PATH)
    def test_query_returns_result_rows(self, mock_post: MagicMock) -> None:
        mock_post.return_value = make_response(200, '{"result": [[1, "test"]]}')

        client = RoamClient(CONFIG)
        result = client.query("[:find ?e :where ...]")

        assert result == [[1, "test"]]
        assert json.loads(mock_post.call_args[1]["data"]) == {
            "query": "[:find ?e :where ...]"
        }

    @patch(POST_PATH)
    def test_query_with_args(self, mock_post: MagicMock) -> None:
        mock_post.return_value = make_response(200, '{"result": [["uid"]]}')

        client = RoamClient(CONFIG)
        client.query("[:find ?uid :in $ ?title ...]", ["Test"])

        assert json.loads(mock_post.call_args[1]["data"])["args"] == ["Test"]

    @patch(POST_PATH)
    def test_query_without_result_key(self, mock_post: MagicMock) -> None:
        mock_post.return_value = make_response(200, "")

        assert RoamClient(CONFIG).query("[:find ?e]") == []

    @patch(POST_PATH)
    def test_batch_wraps_actions(self, mock_post: MagicMock) -> None:
        mock_post.return_value = make_response(200, "")
        actions = [
            {"action": "create-page", "page": {"title": "A"}},
            {"action": "create-page", "page": {"title": "B"}},
        ]

        RoamClient(CONFIG).batch(actions)

        assert mock_post.call_args[0][0].endswith("/write")
        assert json.loads(mock_post.call_args[1]["data"]) == {
            "action": "batch-actions",
            "actions": actions,
        }

    @pytest.mark.parametrize("text", ["[]", "null", '"x"', "42"])
    @patch(POST_PATH)
    def test_query_non_object_body(self, mock_post: MagicMock, text: str) -> None:
        """Test a 200 body that is not a JSON object yields no rows."""
        mock_post.return_value = make_response(200, text)

        assert RoamClient(CONFIG).query("[:find ?e]") == []
