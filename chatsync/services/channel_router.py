"""
Recipient classification: app identity or external phone number.
"""
import re
from dataclasses import dataclass
from typing import Union

from chatsync.core.errors import InvalidRecipient
from chatsync.schemas.conversation import Channel, SMS_REF_PREFIX
from chatsync.schemas.message import E164_PATTERN

# No "_" so canonical ids split unambiguously
IDENTITY_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9.@:-]{0,127}$")

# "sms" paired with another identity would collide with SMS refs
RESERVED_IDENTITIES = frozenset({SMS_REF_PREFIX.rstrip("_")})


@dataclass(frozen=True)
class AppChannel:
    identity: str
    channel: Channel = Channel.APP


@dataclass(frozen=True)
class SmsChannel:
    phone: str
    channel: Channel = Channel.SMS


Route = Union[AppChannel, SmsChannel]


def validate_identity(value: str) -> str:
    """Return ``value`` if it is a usable identity, else raise InvalidRecipient."""
    if not isinstance(value, str) or not IDENTITY_PATTERN.match(value):
        raise InvalidRecipient(f"invalid identity: {value!r}")
    if value.lower() in RESERVED_IDENTITIES:
        raise InvalidRecipient(f"reserved identity: {value!r}")
    return value


def classify(recipient: str) -> Route:
    """Classify a recipient descriptor.

    Anything starting with ``+`` must be an E.164 number; everything else
    must be a valid identity.
    """
    if isinstance(recipient, str) and recipient.startswith("+"):
        if not E164_PATTERN.match(recipient):
            raise InvalidRecipient(f"invalid phone number: {recipient!r}")
        return SmsChannel(phone=recipient)
    return AppChannel(identity=validate_identity(recipient))
