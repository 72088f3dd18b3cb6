"""Plain-text templates for outbound notifications.

Each template is a pair of functions rendering the subject and the body
from the JSON data carried by an OutboundEmail:

    groupCreated   sent to the creator of a new group
    groupInfo      sent when someone asks to join a group with an empty email
    threadCreated  confirmation sent to the author of a new thread
    post           the post itself, relayed to followers
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict

Data = Dict[str, Any]


@dataclass(frozen=True)
class EmailTemplate:
    subject: Callable[[Data], str]
    text: Callable[[Data], str]


def pluralize(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def _group_created_subject(data: Data) -> str:
    return f"Your group {data['group']['name']} has been created"


def _group_created_text(data: Data) -> str:
    group = data["group"]
    return (
        f"Hi {data.get('user', {}).get('name') or 'there'},\n\n"
        f"Your group {group['name']} is ready. Anyone can start a new thread by "
        f"sending an email to {group['email']}.\n\n"
        f"Everything sent to this address is published on {group['url']}\n\n"
        f"You are an admin of this group and will receive new messages sent to it.\n"
    )


def _group_info_subject(data: Data) -> str:
    return f"Welcome to {data['group']['name']}"


def _group_info_text(data: Data) -> str:
    group = data["group"]
    followers = data.get("followers_count", 0)
    lines = [
        f"You are now following the group {group['name']} ({group['email']}).",
        "1 person currently follows this group." if followers == 1
        else f"{followers} people currently follow this group.",
        "",
    ]
    posts = data.get("posts") or []
    if posts:
        total = data.get("posts_count", len(posts))
        lines.append(f"Latest threads ({pluralize(total, 'thread')} in total):")
        for post in posts:
            lines.append(f"- {post['title'] or '(no subject)'}: {post['url']}")
    else:
        lines.append("There are no threads yet. Send an email to the group to start one.")
    lines.append("")
    lines.append(f"Browse the group: {group['url']}")
    return "\n".join(lines) + "\n"


def _thread_created_subject(data: Data) -> str:
    return f"Message sent to {data['group']} ({data['followers_count']} followers)"


def _thread_created_text(data: Data) -> str:
    return (
        f"Your message has been sent to the group {data['group']}.\n"
        f"{data['followers_count']} followers of this group received it.\n"
    )


def _post_subject(data: Data) -> str:
    title = data["post"].get("title") or "(no subject)"
    if data.get("is_reply") and not title.lower().startswith("re:"):
        return f"Re: {title}"
    return title


def _post_text(data: Data) -> str:
    post = data["post"]
    sender = data.get("sender", {})
    return (
        f"{post.get('text') or ''}\n\n"
        f"-- \n"
        f"{sender.get('name') or sender.get('email')} wrote to {data['group']['name']}.\n"
        f"Reply to this email to answer the thread: {post['url']}\n"
        f"To stop receiving these messages: {data.get('unsubscribe', '')}\n"
    )


TEMPLATES: Dict[str, EmailTemplate] = {
    "groupCreated": EmailTemplate(_group_created_subject, _group_created_text),
    "groupInfo": EmailTemplate(_group_info_subject, _group_info_text),
    "threadCreated": EmailTemplate(_thread_created_subject, _thread_created_text),
    "post": EmailTemplate(_post_subject, _post_text),
}


def get_template(name: str) -> EmailTemplate:
    try:
        return TEMPLATES[name]
    except KeyError:
        raise ValueError(f"Unknown email template: {name}")


def render_subject(name: str, data: Data) -> str:
    return get_template(name).subject(data)


def render_text(name: str, data: Data) -> str:
    return get_template(name).text(data)
