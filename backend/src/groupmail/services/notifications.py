"""Notification Dispatcher - decides who gets which outbound email.

Notifications are collected in an Outbox while the pipeline runs and only
handed to the sender after the post is committed, so a rolled-back message
never notifies anyone and a delivery failure never undoes a post.

Outbound post headers embed the routing path so replies come back to the
right thread:

    Message-Id:       <testgroup/12/15@domain>
    References:       <testgroup/12@domain>
    Reply-To:         testgroup/12/15@domain
    List-Unsubscribe: <mailto:testgroup/12+unfollow@domain>
"""

import logging
from email.utils import formataddr
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..config import Settings
from ..infrastructure.repositories import MemberRepository, PostRepository
from ..models.base import MemberRole
from ..models.group import Group
from ..models.post import Post
from ..models.user import User
from ..notifications.ports import EmailSenderPort, OutboundEmail
from ..notifications.templates import render_subject
from ..observability.metrics import notifications_total

logger = logging.getLogger(__name__)

GROUP_INFO_POSTS = 5


class Outbox:
    """Outbound batch of one inbound message."""

    def __init__(self):
        self.messages: List[OutboundEmail] = []

    def add(self, message: Optional[OutboundEmail]) -> None:
        if message is not None:
            self.messages.append(message)

    def extend(self, messages: Iterable[OutboundEmail]) -> None:
        for message in messages:
            self.add(message)

    def __len__(self):
        return len(self.messages)

    def flush(self, sender: EmailSenderPort) -> int:
        """Hand every queued message to the sender.

        Failures are logged and skipped; the batch is emptied either way.

        Returns:
            Number of messages accepted by the sender
        """
        accepted = 0
        messages, self.messages = self.messages, []
        for message in messages:
            try:
                sender.send_message(message)
                accepted += 1
            except Exception as e:
                notifications_total.labels(template=message.template, status="failed").inc()
                logger.error(
                    f"Failed to send {message.template} notification: {e}",
                    exc_info=True,
                    extra={"template": message.template},
                )
        return accepted


class NotificationDispatcher:
    """Compose outbound notifications for groups and posts."""

    def __init__(self, db: Session, settings: Settings):
        self.settings = settings
        self.domain = settings.group_email_domain
        self.members = MemberRepository(db)
        self.posts = PostRepository(db)

    def group_address(self, group: Group) -> str:
        return f"{group.slug}@{self.domain}"

    def group_data(self, group: Group) -> Dict[str, str]:
        return {
            "name": group.name or group.slug,
            "slug": group.slug,
            "email": self.group_address(group),
            "url": f"{self.settings.BASE_URL}{group.path}",
        }

    def post_url(self, group: Group, post: Post) -> str:
        return f"{self.settings.BASE_URL}{group.path}/{post.thread_id}"

    def group_created(self, group: Group, creator: User) -> OutboundEmail:
        data = {
            "group": self.group_data(group),
            "user": {"name": creator.display_name, "email": creator.email},
        }
        return OutboundEmail(
            to=[formataddr((creator.display_name, creator.email))],
            subject=render_subject("groupCreated", data),
            template="groupCreated",
            data=data,
        )

    def group_info(self, group: Group, sender: User, recipients: Iterable[User] = ()) -> OutboundEmail:
        posts, total = self.posts.list_group_posts(group.logical_id, limit=GROUP_INFO_POSTS)
        data = {
            "group": self.group_data(group),
            "followers_count": self.members.count_by_role(MemberRole.FOLLOWER, group_id=group.logical_id),
            "posts_count": total,
            "posts": [{"title": p.title, "url": self.post_url(group, p)} for p in posts],
        }
        return OutboundEmail(
            to=[formataddr((sender.display_name, sender.email))],
            cc=[formataddr((u.display_name, u.email)) for u in recipients if u.email != sender.email],
            subject=render_subject("groupInfo", data),
            template="groupInfo",
            data=data,
        )

    def recipients_for(
        self,
        group: Group,
        thread_root: Post,
        sender: User,
        is_new_thread: bool,
        explicit: Iterable[User] = (),
        already_copied: Iterable[str] = (),
    ) -> List[User]:
        """(thread followers | explicit recipients) - sender - already copied.

        A new thread is announced to the followers of the group; a reply
        goes to the followers of its thread.
        """
        if is_new_thread:
            followers = self.members.followers(group_id=group.logical_id)
        else:
            followers = self.members.followers(post_id=thread_root.logical_id)

        skipped = {email.lower() for email in already_copied}
        skipped.add(sender.email)

        recipients: Dict[str, User] = {}
        for user in list(followers) + list(explicit):
            if user.email in skipped or user.email in recipients:
                continue
            recipients[user.email] = user
        return list(recipients.values())

    def dispatch(
        self,
        group: Group,
        post: Post,
        thread_root: Post,
        sender: User,
        is_new_thread: bool,
        explicit: Iterable[User] = (),
        already_copied: Iterable[str] = (),
    ) -> List[OutboundEmail]:
        """Notifications for a newly written post.

        Returns:
            The confirmation for the sender (new threads) and the post
            itself relayed to followers (omitted when nobody is left)
        """
        already_copied = list(already_copied)
        messages = []
        recipients = self.recipients_for(group, thread_root, sender, is_new_thread, explicit, already_copied)

        if is_new_thread:
            # Reports who actually receives the post
            data = {"group": group.name or group.slug, "followers_count": len(recipients)}
            messages.append(OutboundEmail(
                to=[formataddr((sender.display_name, sender.email))],
                subject=render_subject("threadCreated", data),
                template="threadCreated",
                data=data,
            ))

        if not recipients:
            logger.info(f"No followers to notify for post {post.logical_id}", extra={"post_id": post.logical_id})
            return messages

        thread_id = thread_root.logical_id
        unfollow_path = group.slug if is_new_thread else f"{group.slug}/{thread_id}"
        data = {
            "group": self.group_data(group),
            "post": {
                "id": post.logical_id,
                "thread_id": thread_id,
                "title": post.title,
                "text": post.text,
                "html": post.html,
                "url": self.post_url(group, post),
            },
            "sender": {"name": sender.display_name, "email": sender.email},
            "is_reply": not is_new_thread,
            "unsubscribe": f"mailto:{unfollow_path}+unfollow@{self.domain}",
        }
        messages.append(OutboundEmail(
            to=[formataddr((group.name or group.slug, self.group_address(group)))],
            cc=[formataddr((u.display_name, u.email)) for u in recipients],
            subject=render_subject("post", data),
            template="post",
            data=data,
            from_addr=formataddr((sender.display_name, self.group_address(group))),
            exclude=[sender.email] + already_copied,
            headers={
                "Message-Id": f"<{group.slug}/{thread_id}/{post.logical_id}@{self.domain}>",
                "References": f"<{group.slug}/{thread_id}@{self.domain}>",
                "Reply-To": f"{group.slug}/{thread_id}/{post.logical_id}@{self.domain}",
                "List-Id": f"<{group.slug}.{self.domain}>",
                "List-Unsubscribe": f"<{data['unsubscribe']}>",
            },
        ))
        return messages
