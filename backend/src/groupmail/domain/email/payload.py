"""Normalized inbound email payload.

Both inbound boundaries (the webhook and the SMTP listener) produce this
model. Field aliases follow the header names used by mail relays; the
lower-case variants sent by some relays are accepted as well.
"""

from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def _header(name: str, *variants: str) -> Any:
    return Field(
        None,
        alias=name,
        validation_alias=AliasChoices(name, name.lower(), *variants),
    )


class InboundEmail(BaseModel):
    """One inbound email as delivered by the mail relay."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    from_: Optional[str] = _header("From", "sender")
    to: Optional[str] = _header("To")
    cc: Optional[str] = _header("Cc", "CC")
    subject: Optional[str] = _header("Subject")
    message_id: Optional[str] = _header("Message-Id", "Message-ID", "message_id")
    in_reply_to: Optional[str] = _header("In-Reply-To", "in_reply_to")
    references: Optional[str] = _header("References")
    date: Optional[str] = _header("Date")
    stripped_html: Optional[str] = _header("stripped-html", "stripped_html", "body-html")
    stripped_text: Optional[str] = _header("stripped-text", "stripped_text", "body-plain")

    @field_validator("*", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        if isinstance(value, (list, tuple)):
            # Form posts may repeat a field; keep the first value
            return value[0] if value else None
        return value

    def to_payload(self) -> Dict[str, Any]:
        """Serialize with canonical header names (stored alongside the post)."""
        return self.model_dump(by_alias=True, exclude_none=True)
