"""Email Sender Port - interface for outbound notification delivery.

The pipeline describes each notification as an OutboundEmail and hands it
to a sender. Adapters decide how it is delivered (Celery queue + SMTP
relay in production, an in-memory recorder in tests).
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class OutboundEmail:
    """One outbound notification.

    Attributes:
        to: Primary recipient(s), "Name <email>" or bare address
        subject: Subject line
        template: Body template name (see notifications.templates)
        data: JSON-serializable template data
        cc: Copied recipients
        from_addr: Sender header; the relay default when None
        exclude: Addresses removed from to/cc before delivery
        headers: Extra headers (Message-Id, References, Reply-To, List-Unsubscribe)
    """
    to: List[str]
    subject: str
    template: str
    data: Dict[str, Any] = field(default_factory=dict)
    cc: List[str] = field(default_factory=list)
    from_addr: Optional[str] = None
    exclude: List[str] = field(default_factory=list)
    headers: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OutboundEmail":
        return cls(**data)


class EmailSenderPort(ABC):
    """Port interface for outbound email.

    Implementations should not block on network delivery; failures are
    raised to the caller, which logs them without undoing the post.
    """

    @abstractmethod
    def send(
        self,
        to: List[str],
        subject: str,
        template: str,
        data: Dict[str, Any],
        cc: Optional[List[str]] = None,
        from_addr: Optional[str] = None,
        exclude: Optional[List[str]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        """Queue or send one email.

        Raises:
            Exception: Adapter-specific delivery or queueing failure
        """
        pass

    def send_message(self, message: OutboundEmail) -> None:
        self.send(
            to=message.to,
            subject=message.subject,
            template=message.template,
            data=message.data,
            cc=message.cc,
            from_addr=message.from_addr,
            exclude=message.exclude,
            headers=message.headers,
        )
