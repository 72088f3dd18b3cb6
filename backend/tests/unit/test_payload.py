"""Unit tests for the InboundEmail payload model"""

from groupmail.domain.email.payload import InboundEmail


class TestInboundEmail:

    def test_header_aliases(self):
        email = InboundEmail.model_validate({
            "From": "alice@example.com",
            "To": "testgroup@groupmail.test",
            "Message-Id": "<m1@example.com>",
            "In-Reply-To": "<m0@example.com>",
            "stripped-html": "<p>Hi</p>",
        })

        assert email.from_ == "alice@example.com"
        assert email.message_id == "<m1@example.com>"
        assert email.in_reply_to == "<m0@example.com>"
        assert email.stripped_html == "<p>Hi</p>"

    def test_lower_case_and_relay_variants(self):
        email = InboundEmail.model_validate({
            "sender": "alice@example.com",
            "to": "testgroup@groupmail.test",
            "body-plain": "Hi",
        })

        assert email.from_ == "alice@example.com"
        assert email.to == "testgroup@groupmail.test"
        assert email.stripped_text == "Hi"

    def test_blank_values_become_none(self):
        email = InboundEmail.model_validate({"To": "x@groupmail.test", "Subject": "   "})

        assert email.subject is None

    def test_repeated_form_field_keeps_first(self):
        email = InboundEmail.model_validate({"To": ["a@groupmail.test", "b@groupmail.test"]})

        assert email.to == "a@groupmail.test"

    def test_to_payload_uses_header_names(self):
        email = InboundEmail(from_="alice@example.com", to="testgroup@groupmail.test")

        assert email.to_payload() == {"From": "alice@example.com", "To": "testgroup@groupmail.test"}
