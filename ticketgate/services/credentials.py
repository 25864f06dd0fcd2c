"""
Credential issuance and the QR payload format.

A credential is the JSON text rendered into the QR code shown at the door:

    {"code": "12345678", "issued_at": 1718000000000, "owner_id": "...",
     "ticket_id": "...", "v": 1}

Only the per-ticket secret is persisted; the credential itself is rebuilt
whenever the holder opens the ticket, and is identical until the code's time
step rolls over.
"""
import json, logging, secrets, time
from dataclasses import dataclass
from typing import Callable, NamedTuple

from flask import current_app

from . import totp
from ..errors import IssuanceError

log = logging.getLogger(__name__)

FORMAT_VERSION = 1
SECRET_BYTES = 32


class PayloadError(ValueError):
    pass


@dataclass(frozen=True)
class Credential:
    ticket_id: str
    owner_id: str
    code: str
    issued_at_ms: int
    version: int = FORMAT_VERSION

    def encode(self) -> str:
        return json.dumps({
            'v': self.version,
            'ticket_id': self.ticket_id,
            'owner_id': self.owner_id,
            'code': self.code,
            'issued_at': self.issued_at_ms,
        }, separators=(',', ':'), sort_keys=True)


def decode_payload(raw: str|bytes) -> Credential:
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise PayloadError('payload is not utf-8') from e
    if not isinstance(raw, str) or not raw.strip():
        raise PayloadError('empty payload')
    try:
        data = json.loads(raw)
    except (ValueError, RecursionError) as e:
        # RecursionError: pathologically nested arrays/objects
        raise PayloadError('payload is not json') from e
    if not isinstance(data, dict):
        raise PayloadError('payload is not an object')

    version = data.get('v')
    if type(version) is not int or version != FORMAT_VERSION:
        raise PayloadError(f'unsupported format version: {version!r}')
    for field in ('ticket_id', 'owner_id', 'code'):
        value = data.get(field)
        if not isinstance(value, str) or not value:
            raise PayloadError(f'missing or invalid {field}')
    issued_at = data.get('issued_at')
    # bool is an int subclass
    if type(issued_at) is not int:
        raise PayloadError('missing or invalid issued_at')

    return Credential(
        ticket_id=data['ticket_id'],
        owner_id=data['owner_id'],
        code=data['code'],
        issued_at_ms=issued_at,
        version=version,
    )


class IssuedCredential(NamedTuple):
    payload: str
    secret: str


class CredentialIssuer:
    def __init__(self, period: int = totp.DEFAULT_PERIOD, digits: int = totp.DEFAULT_DIGITS,
                 clock: Callable[[], float] = time.time):
        self.period = period
        self.digits = digits
        self._clock = clock

    def new_secret(self) -> str:
        # Never fall back to a weaker generator
        try:
            return secrets.token_hex(SECRET_BYTES)
        except (OSError, NotImplementedError) as e:
            log.error('entropy source unavailable, aborting issuance')
            raise IssuanceError('entropy source unavailable') from e

    def render(self, ticket_id: str, owner_id: str, secret: str) -> Credential:
        """Build the credential for `secret` as of now."""
        now = self._clock()
        code = totp.current_code(bytes.fromhex(secret), now, self.period, self.digits)
        return Credential(
            ticket_id=ticket_id,
            owner_id=owner_id,
            code=code,
            issued_at_ms=int(now * 1000),
        )

    def issue(self, ticket_id: str, owner_id: str) -> IssuedCredential:
        secret = self.new_secret()
        credential = self.render(ticket_id, owner_id, secret)
        return IssuedCredential(credential.encode(), secret)


def issuer_from_config(clock: Callable[[], float] = time.time) -> CredentialIssuer:
    cfg = current_app.config
    return CredentialIssuer(
        period=int(cfg.get('QR_PERIOD_S', totp.DEFAULT_PERIOD)),
        digits=int(cfg.get('QR_DIGITS', totp.DEFAULT_DIGITS)),
        clock=clock,
    )
