"""Purchase-time issuance and the refund/cancel transitions."""
import logging
import uuid

from sqlalchemy.exc import SQLAlchemyError

from .credentials import CredentialIssuer, Credential, IssuedCredential
from .store import TicketStore
from ..errors import StoreError
from ..models import db, Ticket, TicketStatus

log = logging.getLogger(__name__)


def issue_ticket(issuer: CredentialIssuer, owner_id: str,
                 event_id: str|None=None) -> tuple[Ticket, IssuedCredential]:
    ticket_id = str(uuid.uuid4())
    # IssuanceError propagates before anything is written
    issued = issuer.issue(ticket_id, owner_id)
    ticket = Ticket(
        id=ticket_id,
        event_id=event_id,
        owner_id=owner_id,
        secret=issued.secret,
        status=TicketStatus.VALID.value,
    )
    db.session.add(ticket)
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StoreError('could not persist new ticket') from e
    log.info('issued ticket %s for owner %s', ticket_id, owner_id)
    return ticket, issued


def render_credential(issuer: CredentialIssuer, ticket: Ticket) -> Credential:
    return issuer.render(ticket.id, ticket.owner_id, ticket.secret)


def _transition(store: TicketStore, ticket_id: str, new_status: TicketStatus) -> bool:
    rows = store.conditional_update_status(ticket_id, TicketStatus.VALID.value, new_status.value)
    if rows:
        log.info('ticket %s -> %s', ticket_id, new_status.value)
    return rows == 1


def refund_ticket(store: TicketStore, ticket_id: str) -> bool:
    return _transition(store, ticket_id, TicketStatus.REFUNDED)


def cancel_ticket(store: TicketStore, ticket_id: str) -> bool:
    return _transition(store, ticket_id, TicketStatus.CANCELLED)
