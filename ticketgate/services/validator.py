"""
Door-side credential validation.

Checks run in a fixed order and stop at the first failure. Expected
rejections come back as a ValidationResult; only infrastructure faults raise
(as ValidatorError). The single write is the final compare-and-set from
``valid`` to ``used``, which is what stops two scanners admitting the same
ticket.
"""
import enum, logging, time
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Callable

from flask import current_app

from . import totp
from .credentials import PayloadError, decode_payload
from .store import TicketStore
from ..errors import StoreError, ValidatorError
from ..models import TicketStatus

log = logging.getLogger(__name__)

DEFAULT_WINDOW = 1
DEFAULT_MAX_AGE_S = 300


class Reason(str, enum.Enum):
    OK = 'OK'
    MALFORMED_PAYLOAD = 'MALFORMED_PAYLOAD'
    PAYLOAD_EXPIRED = 'PAYLOAD_EXPIRED'
    TICKET_NOT_FOUND = 'TICKET_NOT_FOUND'
    INVALID_STATUS = 'INVALID_STATUS'
    ALREADY_USED = 'ALREADY_USED'
    OWNER_MISMATCH = 'OWNER_MISMATCH'
    CODE_INVALID = 'CODE_INVALID'


_STATUS_MESSAGES = {
    TicketStatus.REFUNDED.value: 'Ticket was refunded',
    TicketStatus.CANCELLED.value: 'Ticket was cancelled',
}


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: Reason
    message: str
    ticket_id: str|None = None

    def to_dict(self):
        d = asdict(self)
        d['reason'] = self.reason.value
        return d


def _reject(reason: Reason, message: str, ticket_id: str|None=None) -> ValidationResult:
    return ValidationResult(False, reason, message, ticket_id)


class EntryValidator:
    def __init__(self, store: TicketStore, period: int = totp.DEFAULT_PERIOD,
                 digits: int = totp.DEFAULT_DIGITS, window: int = DEFAULT_WINDOW,
                 max_age_s: int = DEFAULT_MAX_AGE_S, clock: Callable[[], float] = time.time):
        self.store = store
        self.period = period
        self.digits = digits
        self.window = window
        self.max_age_s = max_age_s
        self._clock = clock

    def validate(self, raw_payload, scanner_id: str) -> ValidationResult:
        result = self._validate(raw_payload, scanner_id)
        if result.valid:
            log.info('ticket %s admitted by %s', result.ticket_id, scanner_id)
        else:
            log.warning('scan rejected by %s: %s (ticket=%s)',
                        scanner_id, result.reason.value, result.ticket_id)
        return result

    def _validate(self, raw_payload, scanner_id):
        try:
            cred = decode_payload(raw_payload)
        except PayloadError as e:
            log.debug('malformed payload: %s', e)
            return _reject(Reason.MALFORMED_PAYLOAD, 'Invalid QR code format')
        except Exception as e:
            raise ValidatorError('payload decoder failed') from e

        now = self._clock()
        tid = cred.ticket_id
        age_ms = int(now * 1000) - cred.issued_at_ms
        if abs(age_ms) > self.max_age_s * 1000:
            return _reject(Reason.PAYLOAD_EXPIRED, 'QR code expired - please refresh', tid)

        try:
            ticket = self.store.get_ticket_by_id(tid)
        except StoreError as e:
            raise ValidatorError('ticket store unavailable') from e
        if ticket is None:
            return _reject(Reason.TICKET_NOT_FOUND, 'Ticket not found', tid)

        if ticket.status == TicketStatus.USED.value:
            return _reject(Reason.ALREADY_USED, _already_used_message(ticket.used_at), tid)
        if ticket.status != TicketStatus.VALID.value:
            message = _STATUS_MESSAGES.get(ticket.status, f'Ticket status: {ticket.status}')
            return _reject(Reason.INVALID_STATUS, message, tid)
        if ticket.used_at is not None:
            return _reject(Reason.ALREADY_USED, _already_used_message(ticket.used_at), tid)

        if ticket.owner_id != cred.owner_id:
            return _reject(Reason.OWNER_MISMATCH, 'Ticket user mismatch', tid)

        try:
            key = bytes.fromhex(ticket.secret)
        except (TypeError, ValueError) as e:
            raise ValidatorError(f'stored secret for ticket {tid} is corrupt') from e
        delta = totp.match_interval(key, cred.code, now, self.period, self.digits, self.window)
        if delta is None:
            return _reject(Reason.CODE_INVALID, 'QR code validation failed - please refresh', tid)

        used_at = datetime.fromtimestamp(now, tz=timezone.utc)
        try:
            rows = self.store.conditional_update_status(
                tid, TicketStatus.VALID.value, TicketStatus.USED.value,
                used_at=used_at, used_by=scanner_id,
            )
        except StoreError as e:
            raise ValidatorError('ticket store unavailable') from e
        if rows == 0:
            # another scanner won the race
            return _reject(Reason.ALREADY_USED, 'Ticket already scanned', tid)

        return ValidationResult(True, Reason.OK, 'Ticket validated successfully', tid)


def _already_used_message(used_at):
    if used_at is None:
        return 'Ticket already scanned'
    return f'Already scanned at {used_at.isoformat()}'


def validator_from_config(store: TicketStore, clock: Callable[[], float] = time.time) -> EntryValidator:
    cfg = current_app.config
    return EntryValidator(
        store,
        period=int(cfg.get('QR_PERIOD_S', totp.DEFAULT_PERIOD)),
        digits=int(cfg.get('QR_DIGITS', totp.DEFAULT_DIGITS)),
        window=int(cfg.get('QR_WINDOW', DEFAULT_WINDOW)),
        max_age_s=int(cfg.get('QR_MAX_AGE_S', DEFAULT_MAX_AGE_S)),
        clock=clock,
    )
