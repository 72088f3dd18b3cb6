"""Integration tests for re-sanitizing stored posts"""

import pytest

from groupmail.infrastructure.repositories import PostRepository
from groupmail.services.reprocess import ReprocessedPost, reprocess_posts


pytestmark = pytest.mark.integration


def tamper(db_session, post_id, html):
    post = PostRepository(db_session).find_by_logical_id(post_id)
    post.html = html
    db_session.commit()
    return post


class TestReprocessPosts:

    def test_rebuilds_changed_html(self, db_session, pipeline, make_email):
        result = pipeline.process(make_email(**{"stripped-html": "<div><p>Hello world</p></div>"}))
        post = PostRepository(db_session).find_by_logical_id(result.post_id)
        clean = post.html
        tamper(db_session, result.post_id, '<p style="color:red">Hello world</p><script>x()</script>')

        changed = reprocess_posts(db_session)

        assert [c.post_id for c in changed] == [post.id]
        db_session.refresh(post)
        assert post.html == clean
        assert post.version == 1

    def test_unchanged_posts_skipped(self, db_session, pipeline, make_email):
        pipeline.process(make_email())

        assert reprocess_posts(db_session) == []

    def test_dry_run_leaves_posts(self, db_session, pipeline, make_email):
        result = pipeline.process(make_email())
        tamper(db_session, result.post_id, "<p>stale</p>")

        changed = reprocess_posts(db_session, dry_run=True)

        assert len(changed) == 1
        assert PostRepository(db_session).find_by_logical_id(result.post_id).html == "<p>stale</p>"

    def test_posts_without_email_skipped(self, db_session, pipeline, make_email):
        result = pipeline.process(make_email())
        post = tamper(db_session, result.post_id, "<p>stale</p>")
        post.email_json = None
        db_session.commit()

        assert reprocess_posts(db_session) == []


class TestReprocessedPost:

    def test_saving_percent(self):
        assert ReprocessedPost(post_id=1, old_length=200, new_length=50).saving_percent == 75
        assert ReprocessedPost(post_id=1, old_length=0, new_length=10).saving_percent == 0
