"""Unit tests for MIME parsing in the SMTP ingest"""

from email.message import EmailMessage

from groupmail.infrastructure.ingest.mime_parser import extract_bodies, parse_mime_message, to_inbound_email


def raw_email(with_html=True, with_attachment=False, to="testgroup@groupmail.test") -> bytes:
    msg = EmailMessage()
    msg["From"] = "Alice <alice@example.com>"
    if to:
        msg["To"] = to
    msg["Subject"] = "Hello"
    msg["Message-ID"] = "<smtp-1@example.com>"
    msg["In-Reply-To"] = "<smtp-0@example.com>"
    msg.set_content("Plain body\n")
    if with_html:
        msg.add_alternative("<p>Html body</p>", subtype="html")
    if with_attachment:
        msg.add_attachment(b"%PDF-1.4", maintype="application", subtype="pdf", filename="order.pdf")
    return msg.as_bytes()


class TestMimeParser:

    def test_headers_and_bodies(self):
        email = to_inbound_email(parse_mime_message(raw_email()))

        assert email.from_ == "Alice <alice@example.com>"
        assert email.to == "testgroup@groupmail.test"
        assert email.subject == "Hello"
        assert email.message_id == "<smtp-1@example.com>"
        assert email.in_reply_to == "<smtp-0@example.com>"
        assert email.stripped_html.strip() == "<p>Html body</p>"
        assert email.stripped_text.strip() == "Plain body"

    def test_text_only(self):
        html, text = extract_bodies(parse_mime_message(raw_email(with_html=False)))

        assert html is None
        assert text.strip() == "Plain body"

    def test_attachments_ignored(self):
        html, text = extract_bodies(parse_mime_message(raw_email(with_attachment=True)))

        assert html.strip() == "<p>Html body</p>"
        assert text.strip() == "Plain body"

    def test_envelope_recipient_used_without_to(self):
        email = to_inbound_email(parse_mime_message(raw_email(to=None)), envelope_to="testgroup@groupmail.test")

        assert email.to == "testgroup@groupmail.test"
