"""Header and address parsing for inbound email.

Extracts routing data from the addressing fields of an inbound email:

    testgroup@domain                  -> group "testgroup", action "post"
    testgroup+follow@domain           -> group "testgroup", action "follow"
    testgroup+tag1@domain             -> group "testgroup", tags ["tag1"]
    testgroup/12/15@domain            -> reply in thread 12 to post 15
    testgroup/12/15+edit@domain       -> edit post 15 of thread 12

Outbound notifications carry Message-Id / References / Reply-To values in
the `slug/threadId/postId@domain` form, so replies route back here.
"""

import hashlib
import re
from dataclasses import dataclass, field
from email.utils import getaddresses
from typing import List, Optional, Set

from ...errors import InvalidPayload
from ...models.user import EMAIL_PATTERN
from .payload import InboundEmail

# Tag suffixes that select an action instead of tagging the group
ACTIONS = ("follow", "unfollow", "edit")
DEFAULT_ACTION = "post"

ROUTING_ID_PATTERN = re.compile(r'^<?([^/@<>\s]+)/(\d+)(?:/(\d+))?@([^>\s]+)>?$')


@dataclass(frozen=True)
class Address:
    """A parsed `Name <email>` pair. Email is lower-cased."""
    email: str
    name: Optional[str] = None


@dataclass
class RoutingAddress:
    """Routing information carried by the local part of an address."""
    group_slug: str
    tags: List[str] = field(default_factory=list)
    action: str = DEFAULT_ACTION
    thread_id: Optional[int] = None
    post_id: Optional[int] = None
    domain: Optional[str] = None


@dataclass
class ParsedHeaders:
    """Structured routing data extracted from an inbound email."""
    group_slug: str
    tags: List[str]
    recipients: List[Address]
    action: str
    parent_post_id: Optional[int]
    post_id: Optional[int]
    sender: Address
    message_id: str
    in_reply_to: Optional[str] = None
    references: List[str] = field(default_factory=list)
    subject: Optional[str] = None
    # Addresses the sender already copied directly (To/Cc outside the platform)
    already_copied: Set[str] = field(default_factory=set)
    # Sent by the platform itself (a relayed copy coming back)
    from_platform: bool = False


def normalize_message_id(value: Optional[str]) -> Optional[str]:
    """Return a message id in `<id>` form, or None when blank."""
    if not value:
        return None
    value = value.strip().split()[0] if value.strip() else ""
    if not value:
        return None
    if not value.startswith("<"):
        value = f"<{value}"
    if not value.endswith(">"):
        value = f"{value}>"
    return value


def split_references(value: Optional[str]) -> List[str]:
    if not value:
        return []
    ids = re.findall(r'<[^<>]+>', value)
    if not ids:
        ids = [normalize_message_id(token) for token in value.split()]
    return [i for i in ids if i]


def synthetic_message_id(email: InboundEmail, domain: str) -> str:
    """Deterministic Message-Id for emails that lack one.

    Built from a hash of the headers so that redelivery of the same email
    maps to the same id.
    """
    header_data = (
        f"{email.from_ or ''}{email.to or ''}{email.subject or ''}"
        f"{email.date or ''}{email.stripped_text or ''}"
    ).encode()
    header_hash = hashlib.sha256(header_data).hexdigest()[:16]
    return f"<synthetic-{header_hash}@{domain}>"


def extract_names_and_emails(value: Optional[str]) -> List[Address]:
    """Parse a free-text address list into Address pairs.

    "Alice <alice@x.com>, bob@y.com" -> [Address(alice@x.com, Alice),
                                         Address(bob@y.com, None)]

    Malformed entries are dropped; duplicates keep their first occurrence.
    """
    if not value:
        return []
    addresses = []
    seen = set()
    for name, email in getaddresses([value]):
        email = (email or "").strip().strip("'\"").lower()
        if not EMAIL_PATTERN.match(email) or email in seen:
            continue
        seen.add(email)
        name = (name or "").strip().strip("'\"") or None
        addresses.append(Address(email=email, name=name))
    return addresses


def parse_email_address(email: str) -> RoutingAddress:
    """Split an address into group slug, tags, action and thread ids."""
    local_part, _, domain = email.partition("@")
    head, *suffixes = local_part.split("+")
    parts = head.split("/")

    routing = RoutingAddress(group_slug=parts[0].lower(), domain=domain.lower() or None)
    if len(parts) > 1 and parts[1].isdigit():
        routing.thread_id = int(parts[1])
    if len(parts) > 2 and parts[2].isdigit():
        routing.post_id = int(parts[2])

    for suffix in suffixes:
        suffix = suffix.strip().lower()
        if not suffix:
            continue
        if suffix in ACTIONS and routing.action == DEFAULT_ACTION:
            routing.action = suffix
        else:
            routing.tags.append(suffix)
    return routing


def parse_routing_id(message_id: Optional[str], domain: str) -> Optional[RoutingAddress]:
    """Recognize ids minted by the platform (`<slug/thread/post@domain>`)."""
    if not message_id:
        return None
    match = ROUTING_ID_PATTERN.match(message_id.strip())
    if not match or match.group(4).lower() != domain.lower():
        return None
    return RoutingAddress(
        group_slug=match.group(1).lower(),
        thread_id=int(match.group(2)),
        post_id=int(match.group(3)) if match.group(3) else None,
        domain=match.group(4).lower(),
    )


def _is_platform_address(address: Address, domain: str) -> bool:
    return address.email.rsplit("@", 1)[-1] == domain.lower()


def parse_headers(email: InboundEmail, domain: str) -> ParsedHeaders:
    """Extract routing data from an inbound email.

    Args:
        email: Normalized inbound payload
        domain: Platform mail domain hosting the group addresses

    Returns:
        ParsedHeaders

    Raises:
        InvalidPayload: If the recipient or sender field is missing or unusable
    """
    if not email.to:
        raise InvalidPayload('Invalid webhook payload: missing "To"')

    to_addresses = extract_names_and_emails(email.to)
    cc_addresses = extract_names_and_emails(email.cc)
    if not to_addresses:
        raise InvalidPayload(f'Invalid webhook payload: missing valid recipient in "To" ({email.to!r})')

    senders = extract_names_and_emails(email.from_)
    if not senders:
        raise InvalidPayload('Invalid webhook payload: missing "From"')
    sender = senders[0]

    # The group address may sit in To or in Cc (reply-all); fall back to the first To
    platform_addresses = [
        a for a in to_addresses + cc_addresses if _is_platform_address(a, domain)
    ]
    primary = platform_addresses[0] if platform_addresses else to_addresses[0]
    routing = parse_email_address(primary.email)
    if not routing.group_slug:
        raise InvalidPayload(f"Invalid webhook payload: missing group in recipient {primary.email}")

    in_reply_to = normalize_message_id(email.in_reply_to)
    references = split_references(email.references)

    parent_post_id = routing.thread_id
    post_id = routing.post_id
    if parent_post_id is None:
        # Replies to platform mail carry our own ids in In-Reply-To / References
        for candidate in [in_reply_to] + list(reversed(references)):
            reference = parse_routing_id(candidate, domain)
            if reference and reference.group_slug == routing.group_slug:
                parent_post_id = reference.thread_id
                post_id = post_id or reference.post_id
                break

    recipients = []
    already_copied = set()
    for address in to_addresses + cc_addresses:
        if _is_platform_address(address, domain) or address.email == sender.email:
            continue
        if address.email in already_copied:
            continue
        already_copied.add(address.email)
        recipients.append(address)

    message_id = normalize_message_id(email.message_id) or synthetic_message_id(email, domain)
    from_platform = _is_platform_address(sender, domain) or parse_routing_id(message_id, domain) is not None

    return ParsedHeaders(
        group_slug=routing.group_slug,
        tags=routing.tags,
        recipients=recipients,
        action=routing.action,
        parent_post_id=parent_post_id,
        post_id=post_id,
        sender=sender,
        message_id=message_id,
        in_reply_to=in_reply_to,
        references=references,
        subject=email.subject.strip() if email.subject else None,
        already_copied=already_copied,
        from_platform=from_platform,
    )
