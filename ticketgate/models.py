from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import func
import enum
import uuid

db = SQLAlchemy()


class TicketStatus(str, enum.Enum):
    VALID = 'valid'
    USED = 'used'
    REFUNDED = 'refunded'
    CANCELLED = 'cancelled'


def _gen_ticket_id():
    return str(uuid.uuid4())


class Ticket(db.Model):
    __tablename__ = 'tickets'

    id = db.Column(db.String(36), primary_key=True, default=_gen_ticket_id)
    event_id = db.Column(db.String(64), index=True)
    owner_id = db.Column(db.String(128), nullable=False, index=True)
    # hex-encoded one-time-code key; written once at issuance
    secret = db.Column(db.String(128), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=TicketStatus.VALID.value)
    used_at = db.Column(db.DateTime(timezone=True))
    used_by = db.Column(db.String(128))
    purchased_at = db.Column(db.DateTime(timezone=True), server_default=func.now())

    def to_public_dict(self):
        return {
            'ticket_id': self.id,
            'event_id': self.event_id,
            'owner_id': self.owner_id,
            'status': self.status,
            'used_at': self.used_at.isoformat() if self.used_at else None,
            'used_by': self.used_by,
        }


class ScanLog(db.Model):
    __tablename__ = 'scan_log'

    id = db.Column(db.Integer, primary_key=True)
    ts = db.Column(db.DateTime(timezone=True), server_default=func.now())
    ticket_id = db.Column(db.String(36), index=True)
    scanner_id = db.Column(db.String(128))
    valid = db.Column(db.Boolean, nullable=False, default=False)
    reason = db.Column(db.String(32), nullable=False)
