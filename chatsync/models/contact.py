"""
Contact database model.
"""
from sqlalchemy import Column, String, UniqueConstraint

from chatsync.core.database import Base
from chatsync.models.types import UTCDateTime
from chatsync.schemas.contact import Contact


class ContactRecord(Base):

    __tablename__ = "contacts"

    id = Column(String(32), primary_key=True, nullable=False)
    owner_identity = Column(String(128), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    phone_number = Column(String(20), nullable=False)
    contact_identity = Column(String(128), nullable=True)
    created_at = Column(UTCDateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("owner_identity", "phone_number", name="uq_contacts_owner_phone"),
    )

    def to_domain(self) -> Contact:
        return Contact.model_validate(self)
