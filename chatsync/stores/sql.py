"""
SQLAlchemy-backed store.
"""
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Generator, List, Optional, Tuple

from sqlalchemy import insert, or_, select, text, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from chatsync.core.errors import ConversationNotFound, DuplicateKey, StorageUnavailable
from chatsync.core.logging import get_logger
from chatsync.models.contact import ContactRecord
from chatsync.models.conversation import AppConversationRecord, SmsConversationRecord
from chatsync.models.message import MessageRecord
from chatsync.schemas.contact import Contact
from chatsync.schemas.conversation import (
    AppConversation,
    Channel,
    ConversationRef,
    ConversationSummary,
    SmsConversation,
)
from chatsync.schemas.message import Message
from chatsync.stores.base import ConversationStore

logger = get_logger(__name__)


class SqlConversationStore(ConversationStore):
    """Store over any SQLAlchemy engine; unique constraints live in the schema."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _transaction(self) -> Generator[Session, None, None]:
        """One session and one transaction, with driver errors translated."""
        try:
            with self._session_factory() as session:
                with session.begin():
                    yield session
        except IntegrityError as e:
            raise DuplicateKey(str(e.orig)) from e
        except SQLAlchemyError as e:
            logger.error(f"Database operation failed: {e}")
            raise StorageUnavailable("database unavailable") from e

    def _insert_ignore(self, session: Session, values: dict) -> bool:
        """Conditional insert of an app conversation; True when a row was written."""
        table = AppConversationRecord.__table__
        dialect = session.get_bind().dialect.name
        if dialect == "sqlite":
            stmt = sqlite_insert(table).values(**values).on_conflict_do_nothing(index_elements=["id"])
        elif dialect == "postgresql":
            stmt = pg_insert(table).values(**values).on_conflict_do_nothing(index_elements=["id"])
        else:
            try:
                with session.begin_nested():
                    session.execute(insert(table).values(**values))
                return True
            except IntegrityError:
                return False
        return session.execute(stmt).rowcount == 1

    def insert_app_conversation_if_absent(self, conversation_id, participants, now):
        first, second = sorted(participants)
        values = {
            "id": conversation_id,
            "participant_a": first,
            "participant_b": second,
            "last_message": None,
            "last_message_time": now,
            "last_message_sender": None,
            "created_at": now,
            "updated_at": now,
        }
        with self._transaction() as session:
            created = self._insert_ignore(session, values)
            record = session.get(AppConversationRecord, conversation_id)
            return record.to_domain(), created

    def get_app_conversation(self, conversation_id: str) -> Optional[AppConversation]:
        with self._transaction() as session:
            record = session.get(AppConversationRecord, conversation_id)
            return record.to_domain() if record else None

    def list_app_conversations(self, identity: str) -> List[AppConversation]:
        stmt = select(AppConversationRecord).where(
            or_(
                AppConversationRecord.participant_a == identity,
                AppConversationRecord.participant_b == identity,
            )
        )
        with self._transaction() as session:
            return [record.to_domain() for record in session.scalars(stmt)]

    def find_sms_conversation(self, owner: str, phone: str) -> Optional[SmsConversation]:
        stmt = select(SmsConversationRecord).where(
            SmsConversationRecord.owner_identity == owner,
            SmsConversationRecord.phone_descriptor == phone,
        )
        with self._transaction() as session:
            record = session.scalars(stmt).first()
            return record.to_domain() if record else None

    def insert_sms_conversation(self, owner, phone, contact_name, now):
        record = SmsConversationRecord(
            id=uuid.uuid4().hex,
            owner_identity=owner,
            phone_descriptor=phone,
            contact_name=contact_name,
            last_message=None,
            last_message_time=now,
            created_at=now,
            updated_at=now,
        )
        with self._transaction() as session:
            session.add(record)
            session.flush()
            return record.to_domain()

    def get_sms_conversation(self, conversation_id: str) -> Optional[SmsConversation]:
        with self._transaction() as session:
            record = session.get(SmsConversationRecord, conversation_id)
            return record.to_domain() if record else None

    def list_sms_conversations(self, owner: str) -> List[SmsConversation]:
        stmt = select(SmsConversationRecord).where(SmsConversationRecord.owner_identity == owner)
        with self._transaction() as session:
            return [record.to_domain() for record in session.scalars(stmt)]

    def append_message(self, ref: ConversationRef, message: Message, summary: ConversationSummary) -> Message:
        model = AppConversationRecord if ref.channel is Channel.APP else SmsConversationRecord
        values = {
            "last_message": summary.last_message,
            "last_message_time": summary.last_message_time,
            "updated_at": summary.last_message_time,
        }
        if ref.channel is Channel.APP:
            values["last_message_sender"] = summary.last_message_sender

        with self._transaction() as session:
            if session.get(model, ref.id) is None:
                raise ConversationNotFound(f"conversation {ref} does not exist")

            record = MessageRecord(
                id=message.id,
                channel=message.channel.value,
                conversation_id=message.conversation_id,
                sender=message.sender,
                receiver=message.receiver,
                content=message.content,
                type=message.type.value,
                media_ref=message.media_ref,
                external_id=message.external_id,
                is_read=message.is_read,
                created_at=message.created_at,
                updated_at=message.updated_at,
            )
            session.add(record)
            session.flush()

            # Overwrite, never increment; skip if a newer message already won
            session.execute(
                update(model)
                .where(model.id == ref.id, model.last_message_time <= summary.last_message_time)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return record.to_domain()

    def list_messages(self, ref: ConversationRef) -> List[Message]:
        stmt = (
            select(MessageRecord)
            .where(MessageRecord.conversation_id == str(ref))
            .order_by(MessageRecord.created_at.asc(), MessageRecord.seq.asc())
        )
        with self._transaction() as session:
            return [record.to_domain() for record in session.scalars(stmt)]

    def mark_read(self, ref: ConversationRef, reader: str, now: datetime) -> int:
        stmt = (
            update(MessageRecord)
            .where(
                MessageRecord.conversation_id == str(ref),
                MessageRecord.receiver == reader,
                MessageRecord.is_read.is_(False),
            )
            .values(is_read=True, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        with self._transaction() as session:
            return session.execute(stmt).rowcount

    def insert_contact(self, contact: Contact) -> Contact:
        record = ContactRecord(**contact.model_dump())
        with self._transaction() as session:
            session.add(record)
            session.flush()
            return record.to_domain()

    def list_contacts(self, owner: str) -> List[Contact]:
        stmt = (
            select(ContactRecord)
            .where(ContactRecord.owner_identity == owner)
            .order_by(ContactRecord.name.asc())
        )
        with self._transaction() as session:
            return [record.to_domain() for record in session.scalars(stmt)]

    def ping(self) -> bool:
        try:
            with self._transaction() as session:
                session.execute(text("SELECT 1"))
            return True
        except StorageUnavailable:
            return False
