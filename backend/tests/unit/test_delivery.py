"""Unit tests for outbound delivery (Celery task and adapter)"""

from unittest.mock import patch

from groupmail.notifications.celery_sender import CeleryEmailSender
from groupmail.notifications.ports import OutboundEmail
from groupmail.notifications.tasks import build_message, deliver_email, filter_excluded


def post_message(**overrides) -> OutboundEmail:
    values = dict(
        to=["testgroup <testgroup@groupmail.test>"],
        cc=["Alice <alice@example.com>", "bob@example.com"],
        subject="Re: Hello",
        template="post",
        data={
            "group": {"name": "testgroup"},
            "post": {"title": "Hello", "text": "Body text", "html": "<p>Body text</p>", "url": "https://g/testgroup/1"},
            "sender": {"name": "Bob", "email": "bob@example.com"},
            "is_reply": True,
            "unsubscribe": "mailto:testgroup/1+unfollow@groupmail.test",
        },
        from_addr="Bob <testgroup@groupmail.test>",
        exclude=["BOB@example.com"],
        headers={
            "Message-Id": "<testgroup/1/2@groupmail.test>",
            "Reply-To": "testgroup/1/2@groupmail.test",
        },
    )
    values.update(overrides)
    return OutboundEmail(**values)


class TestFilterExcluded:

    def test_case_insensitive_email_match(self):
        kept = filter_excluded(["Alice <alice@example.com>", "bob@example.com"], ["BOB@example.com"])

        assert kept == ["Alice <alice@example.com>"]

    def test_nothing_excluded(self):
        assert filter_excluded(["a@x.com"], []) == ["a@x.com"]


class TestBuildMessage:

    def test_headers_and_recipients(self):
        mime = build_message(post_message(), "groupmail <no-reply@groupmail.test>")

        assert mime["From"] == "Bob <testgroup@groupmail.test>"
        assert mime["Cc"] == "Alice <alice@example.com>"
        assert mime["Message-Id"] == "<testgroup/1/2@groupmail.test>"
        assert mime["Reply-To"] == "testgroup/1/2@groupmail.test"
        assert mime["Subject"] == "Re: Hello"

    def test_text_and_html_parts(self):
        mime = build_message(post_message(), "groupmail <no-reply@groupmail.test>")

        assert mime.get_body(("plain",)).get_content().startswith("Body text")
        assert mime.get_body(("html",)).get_content().strip() == "<p>Body text</p>"

    def test_default_from_and_message_id(self):
        outbound = OutboundEmail(
            to=["alice@example.com"],
            subject="Message sent to testgroup (1 followers)",
            template="threadCreated",
            data={"group": "testgroup", "followers_count": 1},
        )

        mime = build_message(outbound, "groupmail <no-reply@groupmail.test>")

        assert mime["From"] == "groupmail <no-reply@groupmail.test>"
        assert mime["Message-Id"].endswith("@groupmail.test>")
        assert not mime.is_multipart()


class TestDeliverEmail:

    def test_sends_through_relay(self):
        with patch("groupmail.notifications.tasks.smtplib.SMTP") as smtp:
            result = deliver_email(post_message().to_dict())

        assert result == {"status": "sent", "recipients": 2}
        smtp.return_value.__enter__.return_value.send_message.assert_called_once()

    def test_skips_when_everyone_excluded(self):
        message = post_message(
            to=["bob@example.com"], cc=[], exclude=["bob@example.com"], headers={},
        )

        with patch("groupmail.notifications.tasks.smtplib.SMTP") as smtp:
            result = deliver_email(message.to_dict())

        assert result == {"status": "skipped", "recipients": 0}
        smtp.assert_not_called()


class TestCeleryEmailSender:

    def test_send_enqueues_task(self):
        with patch("groupmail.notifications.celery_sender.deliver_email") as task:
            CeleryEmailSender().send_message(post_message())

        task.delay.assert_called_once()
        queued = task.delay.call_args[0][0]
        assert queued["template"] == "post"
        assert queued["exclude"] == ["BOB@example.com"]
        assert OutboundEmail.from_dict(queued) == post_message()
