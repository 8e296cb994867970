"""
Address book endpoints.
"""
from typing import Annotated

from fastapi import APIRouter, Depends, status

from chatsync.api.deps import get_current_identity, get_messaging_service
from chatsync.schemas.contact import ContactResponse, ContactsListResponse, CreateContactRequest
from chatsync.schemas.message import ErrorResponse
from chatsync.services.messaging import MessagingService

router = APIRouter(prefix="/contacts", tags=["Contacts"])


@router.post(
    "",
    response_model=ContactResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse, "description": "Number already saved"}},
    summary="Add a contact",
)
async def add_contact(
    payload: CreateContactRequest,
    identity: Annotated[str, Depends(get_current_identity)],
    service: Annotated[MessagingService, Depends(get_messaging_service)],
) -> ContactResponse:
    contact = service.add_contact(identity, payload.name, payload.phone_number, payload.contact_identity)
    return ContactResponse.from_contact(contact)


@router.get(
    "",
    response_model=ContactsListResponse,
    summary="List contacts",
    description="The caller's address book, ordered by name."
)
async def list_contacts(
    identity: Annotated[str, Depends(get_current_identity)],
    service: Annotated[MessagingService, Depends(get_messaging_service)],
) -> ContactsListResponse:
    contacts = [ContactResponse.from_contact(c) for c in service.list_contacts(identity)]
    return ContactsListResponse(data=contacts, total=len(contacts))
