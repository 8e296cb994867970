"""
Address book schemas.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chatsync.schemas.message import E164_PATTERN


class Contact(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_identity: str
    name: str
    phone_number: str
    contact_identity: Optional[str] = None
    created_at: datetime

    @property
    def is_app_user(self) -> bool:
        return self.contact_identity is not None


class ContactResponse(BaseModel):
    """Contact as returned by the API, with the derived app-user flag."""

    id: str
    owner_identity: str
    name: str
    phone_number: str
    contact_identity: Optional[str] = None
    is_app_user: bool
    created_at: datetime

    @classmethod
    def from_contact(cls, contact: Contact) -> "ContactResponse":
        return cls(**contact.model_dump(), is_app_user=contact.is_app_user)


class CreateContactRequest(BaseModel):
    """Request schema for POST /contacts."""

    name: str = Field(..., min_length=1, max_length=255)
    phone_number: str = Field(..., description="Phone number in E.164 format")
    contact_identity: Optional[str] = Field(
        default=None,
        max_length=128,
        description="App identity the number belongs to, when known"
    )

    @field_validator("phone_number")
    @classmethod
    def validate_phone_e164(cls, v: str) -> str:
        if not E164_PATTERN.match(v):
            raise ValueError("Invalid E.164 phone number format. Must start with + followed by digits only.")
        return v


class ContactsListResponse(BaseModel):
    data: List[ContactResponse]
    total: int
