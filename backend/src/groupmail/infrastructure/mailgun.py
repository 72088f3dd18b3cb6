"""Retrieval of stored messages from the mail server.

The publish action references an email kept by the mail relay (Mailgun
storage API) instead of carrying it in the token; this client fetches it
with a bounded timeout and normalizes it into an InboundEmail.
"""

import logging
from typing import Optional

import httpx

from ..domain.email.payload import InboundEmail
from ..errors import NotFound

logger = logging.getLogger(__name__)


class MailServerClient:
    """Fetch stored messages from the relay's storage API."""

    def __init__(
        self,
        api_key: Optional[str],
        domain: str,
        timeout_seconds: float = 3.0,
        client: Optional[httpx.Client] = None,
    ):
        self.api_key = api_key
        self.domain = domain
        self.timeout_seconds = timeout_seconds
        self.client = client

    def fetch_message_url(self, mail_server: str, message_id: str) -> str:
        """Build the storage URL; `mail_server` is the relay's region host (e.g. "so")."""
        host = mail_server if "." in mail_server else f"{mail_server}.api.mailgun.net"
        return f"https://{host}/v3/domains/{self.domain}/messages/{message_id}"

    def fetch(self, mail_server: str, message_id: str) -> InboundEmail:
        """Retrieve and normalize a stored message.

        Raises:
            NotFound: If the message is gone or the server is unreachable
        """
        url = self.fetch_message_url(mail_server, message_id)
        auth = ("api", self.api_key) if self.api_key else None
        try:
            if self.client is not None:
                response = self.client.get(url, auth=auth, timeout=self.timeout_seconds)
            else:
                with httpx.Client(timeout=self.timeout_seconds) as client:
                    response = client.get(url, auth=auth)
        except httpx.HTTPError as e:
            logger.warning(f"Mail server {mail_server} unreachable: {e}")
            raise NotFound("Could not retrieve the email from the mail server") from e

        if response.status_code != 200:
            logger.info(f"Mail server returned {response.status_code} for message {message_id}")
            raise NotFound("Email not found")

        return InboundEmail.model_validate(response.json())
