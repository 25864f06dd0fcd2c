"""
Ticket store contract used by the entry validator.

The validator needs exactly two things from persistence: a point read by id
and an atomic compare-and-set on ``status``. Two implementations live here:
the SQLAlchemy store used by the app, and an in-memory store for tooling and
tests.
"""
import threading
from dataclasses import dataclass, replace
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from ..errors import StoreError
from ..models import db, Ticket


@dataclass(frozen=True)
class TicketRecord:
    id: str
    owner_id: str
    secret: str
    status: str
    used_at: datetime|None = None
    used_by: str|None = None


class TicketStore:
    def get_ticket_by_id(self, ticket_id: str) -> TicketRecord|None:
        raise NotImplementedError

    def conditional_update_status(self, ticket_id: str, expected_status: str, new_status: str,
                                  used_at: datetime|None=None, used_by: str|None=None) -> int:
        """Atomically set status to `new_status` only if it is `expected_status`.

        Returns the number of rows changed (0 or 1).
        """
        raise NotImplementedError


class SqlTicketStore(TicketStore):
    def get_ticket_by_id(self, ticket_id):
        try:
            row = db.session.get(Ticket, ticket_id)
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StoreError(f'ticket lookup failed for {ticket_id}') from e
        if row is None:
            return None
        return TicketRecord(
            id=row.id,
            owner_id=row.owner_id,
            secret=row.secret,
            status=row.status,
            used_at=row.used_at,
            used_by=row.used_by,
        )

    def conditional_update_status(self, ticket_id, expected_status, new_status,
                                  used_at=None, used_by=None):
        values = {'status': new_status}
        if used_at is not None:
            values['used_at'] = used_at
        if used_by is not None:
            values['used_by'] = used_by
        stmt = (
            update(Ticket)
            .where(Ticket.id == ticket_id, Ticket.status == expected_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = db.session.execute(stmt)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StoreError(f'status update failed for {ticket_id}') from e
        return result.rowcount


class MemoryTicketStore(TicketStore):
    def __init__(self):
        self._data = {}
        self._lock = threading.Lock()

    def add(self, record: TicketRecord):
        with self._lock:
            self._data[record.id] = record

    def get_ticket_by_id(self, ticket_id):
        with self._lock:
            return self._data.get(ticket_id)

    def conditional_update_status(self, ticket_id, expected_status, new_status,
                                  used_at=None, used_by=None):
        with self._lock:
            cur = self._data.get(ticket_id)
            if cur is None or cur.status != expected_status:
                return 0
            changes = {'status': new_status}
            if used_at is not None:
                changes['used_at'] = used_at
            if used_by is not None:
                changes['used_by'] = used_by
            self._data[ticket_id] = replace(cur, **changes)
            return 1
