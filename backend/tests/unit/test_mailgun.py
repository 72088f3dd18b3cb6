"""Unit tests for stored message retrieval"""

from unittest.mock import MagicMock

import httpx
import pytest

from groupmail.errors import NotFound
from groupmail.infrastructure.mailgun import MailServerClient


def make_client(**kwargs) -> MailServerClient:
    return MailServerClient(api_key="key-123", domain="groupmail.test", timeout_seconds=2.0, **kwargs)


class TestMailServerClient:

    def test_message_url(self):
        client = make_client()

        assert client.fetch_message_url("so", "abc") == \
            "https://so.api.mailgun.net/v3/domains/groupmail.test/messages/abc"
        assert client.fetch_message_url("storage.eu.mailgun.net", "abc") == \
            "https://storage.eu.mailgun.net/v3/domains/groupmail.test/messages/abc"

    def test_fetch_normalizes_payload(self):
        http = MagicMock()
        http.get.return_value = MagicMock(status_code=200)
        http.get.return_value.json.return_value = {
            "From": "alice@example.com",
            "To": "testgroup@groupmail.test",
            "Subject": "Held message",
            "stripped-html": "<p>Hi</p>",
        }

        email = make_client(client=http).fetch("so", "abc")

        assert email.subject == "Held message"
        assert email.stripped_html == "<p>Hi</p>"
        http.get.assert_called_once_with(
            "https://so.api.mailgun.net/v3/domains/groupmail.test/messages/abc",
            auth=("api", "key-123"),
            timeout=2.0,
        )

    def test_missing_message(self):
        http = MagicMock()
        http.get.return_value = MagicMock(status_code=404)

        with pytest.raises(NotFound, match="Email not found"):
            make_client(client=http).fetch("so", "abc")

    def test_unreachable_server(self):
        http = MagicMock()
        http.get.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(NotFound, match="Could not retrieve"):
            make_client(client=http).fetch("so", "abc")
