"""Integration tests for the inbound email pipeline

Tests cover the end-to-end scenarios:
- New group from a first email
- Reply through In-Reply-To
- Redelivery of the same Message-Id
- "Introduce me" email to an existing group
- Missing recipient
- Reply to a reply
- Failing notification delivery
"""

import pytest

from groupmail.errors import InvalidPayload
from groupmail.infrastructure.repositories import GroupRepository, MemberRepository, PostRepository
from groupmail.models import Activity, Group, InboundMessage, Member, MemberRole, Post, User


pytestmark = pytest.mark.integration


def member_roles(db_session, user, **target):
    rows = db_session.query(Member).filter_by(user_id=user.id, **target).all()
    return sorted(r.role for r in rows)


def user(db_session, email):
    return db_session.query(User).filter_by(email=email).one()


class TestNewGroup:
    """Scenario: first email to testgroup@ from alice"""

    def test_creates_group_post_and_memberships(self, db_session, pipeline, make_email, sent):
        result = pipeline.process(make_email(Subject="Kick-off meeting"))

        assert result.status == "ok"
        group = GroupRepository(db_session).find_by_slug("testgroup")
        assert group.name == "testgroup"
        post = PostRepository(db_session).find_by_logical_id(result.post_id)
        assert post.title == "Kick-off meeting"
        assert post.slug == f"kick-off-meeting-{post.post_id}"
        assert post.group_id == group.logical_id
        assert post.parent_post_id is None
        assert post.html == "<p>Hello world</p>"
        assert post.text == "Hello world"
        assert post.email_json["Subject"] == "Kick-off meeting"

        alice = user(db_session, "alice@example.com")
        assert alice.name == "Alice"
        assert group.user_id == alice.id
        assert member_roles(db_session, alice, group_id=group.logical_id) == ["ADMIN", "FOLLOWER"]
        assert member_roles(db_session, alice, post_id=post.logical_id) == ["ADMIN", "FOLLOWER"]

        assert result.thread_id == post.logical_id
        assert result.redirect == f"/testgroup/{post.logical_id}"

    def test_notifications(self, pipeline, make_email, sent):
        pipeline.process(make_email())

        assert sent.templates() == ["groupCreated", "threadCreated"]
        assert sent.messages[0].subject == "Your group testgroup has been created"
        assert sent.messages[1].subject == "Message sent to testgroup (0 followers)"

    def test_confirmation_counts_notified_followers(self, pipeline, make_email, sent):
        pipeline.process(make_email())
        pipeline.process(make_email(**{
            "From": "bob@example.com",
            "To": "testgroup+follow@groupmail.test",
            "Message-Id": "<follow@mail.example.com>",
        }))
        sent.messages.clear()

        pipeline.process(make_email(Subject="Second topic", **{"Message-Id": "<msg-2@mail.example.com>"}))

        (confirmation,) = sent.of("threadCreated")
        assert confirmation.subject == "Message sent to testgroup (1 followers)"
        assert sent.of("post")[0].cc == ["bob <bob@example.com>"]

    def test_recipients_become_admins_and_followers(self, db_session, pipeline, make_email, sent):
        pipeline.process(make_email(Cc="Bob <bob@example.com>"))

        group = GroupRepository(db_session).find_by_slug("testgroup")
        bob = user(db_session, "bob@example.com")
        assert member_roles(db_session, bob, group_id=group.logical_id) == ["ADMIN", "FOLLOWER"]
        # bob was copied directly by alice, so the relayed post skips him
        assert sent.templates() == ["groupCreated", "threadCreated"]

    def test_tags_stored_on_new_group(self, db_session, pipeline, make_email):
        pipeline.process(make_email(To="testgroup+design+2024@groupmail.test"))

        assert GroupRepository(db_session).find_by_slug("testgroup").tags == ["design", "2024"]

    def test_activities_recorded(self, db_session, pipeline, make_email):
        pipeline.process(make_email())

        assert sorted(a.action for a in db_session.query(Activity).all()) == ["CREATE", "CREATE"]


class TestReply:
    """Scenario: bob replies to alice's thread through In-Reply-To"""

    def test_reply_attaches_to_thread(self, db_session, pipeline, make_email, sent):
        first = pipeline.process(make_email())
        sent.messages.clear()

        result = pipeline.process(make_email(**{
            "From": "Bob <bob@example.com>",
            "Subject": "Re: Hello everyone",
            "Message-Id": "<msg-2@mail.example.com>",
            "In-Reply-To": "<msg-1@mail.example.com>",
            "stripped-html": "<p>Count me in</p>",
        }))

        reply = PostRepository(db_session).find_by_logical_id(result.post_id)
        assert reply.parent_post_id == first.post_id
        assert result.thread_id == first.post_id

        bob = user(db_session, "bob@example.com")
        assert member_roles(db_session, bob, post_id=first.post_id) == ["FOLLOWER"]
        assert member_roles(db_session, bob, post_id=reply.logical_id) == ["ADMIN"]

        assert sent.templates() == ["post"]
        post_mail = sent.messages[0]
        assert post_mail.cc == ["Alice <alice@example.com>"]
        assert post_mail.subject == "Re: Hello everyone"
        assert post_mail.headers["References"] == f"<testgroup/{first.post_id}@groupmail.test>"
        assert "bob@example.com" in post_mail.exclude

    def test_reply_through_routing_address(self, db_session, pipeline, make_email, sent):
        first = pipeline.process(make_email())

        result = pipeline.process(make_email(**{
            "From": "bob@example.com",
            "To": f"testgroup/{first.post_id}/{first.post_id}@groupmail.test",
            "Subject": "Re: Hello everyone",
            "Message-Id": "<msg-2@mail.example.com>",
        }))

        assert result.thread_id == first.post_id
        assert PostRepository(db_session).find_by_logical_id(result.post_id).parent_post_id == first.post_id

    def test_reply_to_reply_attaches_to_root(self, db_session, pipeline, make_email):
        root = pipeline.process(make_email())
        reply = pipeline.process(make_email(**{
            "From": "bob@example.com",
            "Message-Id": "<msg-2@mail.example.com>",
            "In-Reply-To": "<msg-1@mail.example.com>",
        }))

        nested = pipeline.process(make_email(**{
            "From": "carol@example.com",
            "Message-Id": "<msg-3@mail.example.com>",
            "In-Reply-To": "<msg-2@mail.example.com>",
            "References": "<msg-1@mail.example.com> <msg-2@mail.example.com>",
        }))

        post = PostRepository(db_session).find_by_logical_id(nested.post_id)
        assert reply.thread_id == root.post_id
        assert post.parent_post_id == root.post_id

    def test_reply_recipients(self, db_session, pipeline, make_email, sent):
        """Thread followers {alice, carol}, group followers {alice, bob}: a reply by dave reaches alice and carol."""
        root = pipeline.process(make_email())
        group = GroupRepository(db_session).find_by_slug("testgroup")
        members = MemberRepository(db_session)
        bob = pipeline.identity.find_or_create("bob@example.com")
        carol = pipeline.identity.find_or_create("carol@example.com")
        members.find_or_create(bob.id, MemberRole.FOLLOWER, group_id=group.logical_id)
        members.find_or_create(carol.id, MemberRole.FOLLOWER, post_id=root.post_id)
        db_session.commit()
        sent.messages.clear()

        pipeline.process(make_email(**{
            "From": "dave@example.com",
            "Message-Id": "<msg-4@mail.example.com>",
            "In-Reply-To": "<msg-1@mail.example.com>",
        }))

        (post_mail,) = sent.of("post")
        assert post_mail.cc == ["Alice <alice@example.com>", "carol <carol@example.com>"]


class TestIdempotence:
    """Scenario: the same Message-Id delivered twice"""

    def test_second_delivery_is_duplicate(self, db_session, pipeline, make_email, sent):
        email = make_email(Cc="bob@example.com")
        assert pipeline.process(email).status == "ok"
        counts = (db_session.query(Post).count(), db_session.query(Member).count(), len(sent.messages))

        result = pipeline.process(email)

        assert result.status == "duplicate"
        assert result.redirect == "/testgroup"
        assert (db_session.query(Post).count(), db_session.query(Member).count(), len(sent.messages)) == counts

    def test_duplicate_reply(self, db_session, pipeline, make_email, sent):
        pipeline.process(make_email())
        reply = make_email(**{"From": "bob@example.com", "Message-Id": "<msg-2@mail.example.com>",
                              "In-Reply-To": "<msg-1@mail.example.com>"})
        pipeline.process(reply)
        batches = len(sent.messages)

        assert pipeline.process(reply).status == "duplicate"
        assert db_session.query(Post).count() == 2
        assert len(sent.messages) == batches

    def test_introduce_me_redelivery_sends_one_welcome(self, db_session, pipeline, make_email, sent):
        pipeline.process(make_email())
        sent.messages.clear()
        intro = make_email(**{
            "From": "Dave <dave@example.com>",
            "Subject": "",
            "Message-Id": "<intro@mail.example.com>",
            "stripped-html": "",
            "stripped-text": "",
        })

        assert pipeline.process(intro).status == "ok"
        assert pipeline.process(intro).status == "duplicate"

        assert sent.templates() == ["groupInfo"]
        assert db_session.query(Post).count() == 1

    def test_subject_only_redelivery_is_duplicate(self, db_session, pipeline, make_email, sent):
        pipeline.process(make_email())
        email = make_email(**{
            "Message-Id": "<empty@mail.example.com>",
            "Subject": "Only a subject",
            "stripped-html": None,
            "stripped-text": None,
        })
        pipeline.process(email)
        batches = len(sent.messages)

        assert pipeline.process(email).status == "duplicate"
        assert len(sent.messages) == batches

    def test_follow_redelivery_is_duplicate(self, db_session, pipeline, make_email):
        pipeline.process(make_email())
        follow = make_email(**{
            "From": "bob@example.com",
            "To": "testgroup+follow@groupmail.test",
            "Message-Id": "<follow@mail.example.com>",
        })

        assert pipeline.process(follow).status == "ok"
        assert pipeline.process(follow).status == "duplicate"

    def test_processed_ids_recorded(self, db_session, pipeline, make_email):
        first = pipeline.process(make_email())

        (row,) = db_session.query(InboundMessage).all()
        assert row.message_id == "<msg-1@mail.example.com>"
        assert row.action == "post"
        assert row.group_slug == "testgroup"
        assert row.post_id == first.post_id


class TestRelayLoop:
    """Scenario: a post relayed by the platform comes back to the webhook"""

    def relayed_copy(self, make_email, thread_id, post_id, **overrides):
        fields = {
            "From": "Alice <testgroup@groupmail.test>",
            "To": "testgroup@groupmail.test",
            "Cc": "Bob <bob@example.com>",
            "Message-Id": f"<testgroup/{thread_id}/{post_id}@groupmail.test>",
            "References": f"<testgroup/{thread_id}@groupmail.test>",
        }
        fields.update(overrides)
        return make_email(**fields)

    def test_relayed_copy_is_not_reposted(self, db_session, pipeline, make_email, sent):
        first = pipeline.process(make_email(Cc="Bob <bob@example.com>"))
        sent.messages.clear()

        result = pipeline.process(self.relayed_copy(make_email, first.thread_id, first.post_id))

        assert result.status == "duplicate"
        assert db_session.query(Post).count() == 1
        assert sent.messages == []

    def test_platform_message_id_from_outside_sender(self, db_session, pipeline, make_email, sent):
        first = pipeline.process(make_email())
        sent.messages.clear()

        result = pipeline.process(self.relayed_copy(
            make_email, first.thread_id, first.post_id, From="bob@example.com",
        ))

        assert result.status == "duplicate"
        assert db_session.query(Post).count() == 1
        assert sent.messages == []


class TestUnusualAddresses:
    """Scenario: addresses valid under RFC 5322 but outside the common subset"""

    def test_apostrophe_sender(self, db_session, pipeline, make_email):
        result = pipeline.process(make_email(From="Pat O'Brien <pat.o'brien@example.com>"))

        assert result.status == "ok"
        pat = user(db_session, "pat.o'brien@example.com")
        group = GroupRepository(db_session).find_by_slug("testgroup")
        assert member_roles(db_session, pat, group_id=group.logical_id) == ["ADMIN", "FOLLOWER"]

    def test_apostrophe_recipient(self, db_session, pipeline, make_email):
        result = pipeline.process(make_email(Cc="Pat <o'brien@example.com>"))

        assert result.status == "ok"
        group = GroupRepository(db_session).find_by_slug("testgroup")
        pat = user(db_session, "o'brien@example.com")
        assert "FOLLOWER" in member_roles(db_session, pat, group_id=group.logical_id)


class TestIntroduceMe:
    """Scenario: empty subject and body to an existing group"""

    def test_adds_followers_without_post(self, db_session, pipeline, make_email, sent):
        pipeline.process(make_email())
        sent.messages.clear()

        result = pipeline.process(make_email(**{
            "From": "Dave <dave@example.com>",
            "Cc": "Erin <erin@example.com>",
            "Subject": "",
            "Message-Id": "<intro@mail.example.com>",
            "stripped-html": "",
            "stripped-text": "",
        }))

        assert result.status == "ok"
        assert result.post_id is None
        assert db_session.query(Post).count() == 1
        group = GroupRepository(db_session).find_by_slug("testgroup")
        for email in ("dave@example.com", "erin@example.com"):
            assert member_roles(db_session, user(db_session, email), group_id=group.logical_id) == ["FOLLOWER"]

        (info,) = sent.messages
        assert info.template == "groupInfo"
        assert info.to == ["Dave <dave@example.com>"]
        assert info.cc == ["Erin <erin@example.com>"]
        assert info.data["followers_count"] == 3
        assert info.data["posts_count"] == 1
        assert info.subject == "Welcome to testgroup"


class TestInvalidPayload:
    """Scenario: missing To"""

    def test_missing_to_raises_before_any_write(self, db_session, pipeline, make_email, sent):
        with pytest.raises(InvalidPayload, match="missing"):
            pipeline.process(make_email(To=None))

        assert db_session.query(User).count() == 0
        assert db_session.query(Group).count() == 0
        assert sent.messages == []


class TestBootstrap:

    def test_bootstrap_email_creates_group_only(self, db_session, pipeline, make_email, sent, settings):
        result = pipeline.process(make_email(Subject=settings.BOOTSTRAP_SUBJECT))

        assert result.status == "ok"
        assert result.redirect == "/testgroup"
        assert GroupRepository(db_session).find_by_slug("testgroup") is not None
        assert db_session.query(Post).count() == 0
        assert sent.templates() == ["groupCreated"]

    def test_subject_without_body_creates_no_post(self, db_session, pipeline, make_email):
        pipeline.process(make_email())

        result = pipeline.process(make_email(**{
            "Message-Id": "<empty@mail.example.com>",
            "Subject": "Only a subject",
            "stripped-html": None,
            "stripped-text": None,
        }))

        assert result.post_id is None
        assert db_session.query(Post).count() == 1


class TestDeliveryFailure:

    def test_send_failure_keeps_post(self, db_session, settings, make_email):
        from groupmail.services.pipeline import InboundEmailPipeline

        class BrokenSender:
            def send_message(self, message):
                raise ConnectionError("broker unreachable")

        result = InboundEmailPipeline(db_session, BrokenSender(), settings=settings).process(make_email())

        assert result.status == "ok"
        assert db_session.query(Post).count() == 1
