"""Integration tests for the signed action links (/api/*)"""

import pytest

from groupmail.auth.tokens import create_action_token
from groupmail.dependencies import get_mail_server_client
from groupmail.domain.email.payload import InboundEmail
from groupmail.infrastructure.repositories import GroupRepository, MemberRepository, PostRepository
from groupmail.main import app
from groupmail.models import Member, User
from groupmail.models.base import ContentStatus, MemberRole


pytestmark = pytest.mark.integration


@pytest.fixture
def thread(pipeline, make_email, sent):
    result = pipeline.process(make_email())
    sent.messages.clear()
    return result


@pytest.fixture
def group(db_session, thread):
    return GroupRepository(db_session).find_by_slug("testgroup")


@pytest.fixture
def alice(db_session, thread):
    return db_session.query(User).filter_by(email="alice@example.com").one()


def get(client, path, **params):
    return client.get(path, params=params, follow_redirects=False)


class TestFollowLink:

    def test_follow_group(self, client, db_session, group, user_factory):
        bob = user_factory("bob@example.com", "Bob")
        token = create_action_token({"UserId": bob.id, "GroupId": group.logical_id})

        response = get(client, "/api/follow", token=token)

        assert response.status_code == 200
        assert response.text == "You have successfully subscribed to new messages sent to this group"
        assert MemberRepository(db_session).find(bob.id, MemberRole.FOLLOWER, group_id=group.logical_id)

        again = get(client, "/api/follow", token=token)
        assert again.text == "It looks like you've already subscribed to those notifications"

    def test_follow_thread(self, client, thread, user_factory):
        bob = user_factory("bob@example.com")
        token = create_action_token({"UserId": bob.id, "PostId": thread.post_id})

        response = get(client, "/api/follow", token=token)

        assert response.text == "You have successfully subscribed to future updates to this thread"

    def test_missing_user(self, client, group):
        token = create_action_token({"UserId": 999, "GroupId": group.logical_id})

        response = get(client, "/api/follow", token=token)

        assert response.status_code == 200
        assert response.text == "This user no longer exists"

    def test_missing_group(self, client, alice):
        token = create_action_token({"UserId": alice.id, "GroupId": 999})

        assert get(client, "/api/follow", token=token).text == "This group no longer exists"

    def test_expired_token(self, client, alice, group):
        token = create_action_token({"UserId": alice.id, "GroupId": group.logical_id}, expires_in_hours=-1)

        response = get(client, "/api/follow", token=token, groupSlug="testgroup")

        assert response.status_code == 400
        assert response.text == "The token has expired. Please resend your email to testgroup@groupmail.test"

    def test_garbage_token(self, client):
        response = get(client, "/api/follow", token="not-a-token")

        assert response.status_code == 400
        assert response.text == "Invalid token"

    def test_token_without_target(self, client, alice):
        response = get(client, "/api/follow", token=create_action_token({"UserId": alice.id}))

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_payload"


class TestUnfollowLink:

    def test_unfollow_group(self, client, db_session, alice, group):
        member = MemberRepository(db_session).find(alice.id, MemberRole.FOLLOWER, group_id=group.logical_id)
        token = create_action_token({"MemberId": member.id})

        response = get(client, "/api/unfollow", token=token)

        assert response.text == "You have successfully unsubscribed from new messages sent to this group"
        assert db_session.query(Member).filter_by(id=member.id).count() == 0

    def test_unfollow_thread(self, client, db_session, alice, thread):
        member = MemberRepository(db_session).find(alice.id, MemberRole.FOLLOWER, post_id=thread.post_id)

        response = get(client, "/api/unfollow", token=create_action_token({"MemberId": member.id}))

        assert response.text == "You have successfully unsubscribed from future updates to this thread"

    def test_missing_member(self, client):
        response = get(client, "/api/unfollow", token=create_action_token({"MemberId": 999}))

        assert response.status_code == 200
        assert response.text == "It looks like you've already unsubscribed from those notifications"


class TestApproveLink:

    def test_approve_group_version(self, client, db_session, alice, group):
        draft = GroupRepository(db_session).update(
            group, {"name": "Test Group"}, actor_id=alice.id, status=ContentStatus.DRAFT
        )
        db_session.commit()
        token = create_action_token({"type": "group", "TargetId": draft.id})

        response = get(client, "/api/approve", token=token)

        assert response.status_code == 302
        assert response.headers["location"] == "/testgroup"
        published = GroupRepository(db_session).find_by_slug("testgroup")
        assert published.id == draft.id
        assert published.name == "Test Group"
        versions = GroupRepository(db_session).list_versions(group.logical_id)
        assert [v.status for v in versions] == [ContentStatus.PUBLISHED.value, ContentStatus.ARCHIVED.value]

    def test_approve_post_version(self, client, db_session, alice, thread):
        posts = PostRepository(db_session)
        draft = posts.update(
            posts.find_by_logical_id(thread.post_id),
            {"html": "<p>Approved</p>"},
            actor_id=alice.id,
            status=ContentStatus.DRAFT,
        )
        db_session.commit()

        response = get(client, "/api/approve", token=create_action_token({"type": "post", "TargetId": draft.id}))

        assert response.status_code == 302
        assert response.headers["location"] == f"/testgroup/{thread.post_id}"
        assert posts.find_by_logical_id(thread.post_id).html == "<p>Approved</p>"

    def test_approve_missing_version(self, client, thread):
        response = get(client, "/api/approve", token=create_action_token({"type": "group", "TargetId": 999}))

        assert response.status_code == 200
        assert response.text == "Cannot approve: group 999 not found"

    def test_approve_unknown_type(self, client):
        response = get(client, "/api/approve", token=create_action_token({"type": "comment", "TargetId": 1}))

        assert response.status_code == 400

    def test_approve_deleted_version(self, client, db_session, alice, group):
        draft = GroupRepository(db_session).update(
            group, {"name": "Withdrawn"}, actor_id=alice.id, status=ContentStatus.DRAFT
        )
        draft.status = ContentStatus.DELETED.value
        db_session.commit()
        token = create_action_token({"type": "group", "TargetId": draft.id})

        response = get(client, "/api/approve", token=token)

        assert response.status_code == 200
        assert response.text == "This version can no longer be published"
        published = GroupRepository(db_session).find_by_slug("testgroup")
        assert published.id == group.id
        assert published.name == "testgroup"


class FakeMailServer:

    def __init__(self, email):
        self.email = email
        self.requests = []

    def fetch(self, mail_server, message_id):
        self.requests.append((mail_server, message_id))
        return InboundEmail.model_validate(self.email)


class TestPublishLink:

    def test_publish_held_email(self, client, db_session, make_email, sent):
        server = FakeMailServer(make_email(Subject="Held for review"))
        app.dependency_overrides[get_mail_server_client] = lambda: server
        token = create_action_token({"mailServer": "so", "messageId": "stored-key"})

        response = get(client, "/api/publish", token=token, groupSlug="testgroup")

        assert response.status_code == 302
        assert response.headers["location"] == "/testgroup/1"
        assert server.requests == [("so", "stored-key")]
        assert PostRepository(db_session).find_by_logical_id(1).title == "Held for review"
        assert sent.templates() == ["groupCreated", "threadCreated"]

    def test_publish_without_message_id(self, client):
        app.dependency_overrides[get_mail_server_client] = lambda: FakeMailServer({})

        response = get(client, "/api/publish", token=create_action_token({"mailServer": "so"}))

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_payload"
