from flask import Blueprint, jsonify, request, current_app, send_file
import base64
import io
from .models import db, Ticket
from .services.credentials import issuer_from_config
from .services.qr import make_qr_bytes
from .services.store import SqlTicketStore
from .services.tickets import issue_ticket, refund_ticket, cancel_ticket
from .services.auth import ROLE_ADMIN

bp = Blueprint('admin', __name__)


@bp.before_request
def require_admin():
    auth = current_app.extensions['ticketgate_auth']
    if not auth.enabled:
        return jsonify({'error': 'auth_disabled'}), 401
    principal = auth.authenticate(request)
    if principal is None or principal.role != ROLE_ADMIN:
        return jsonify({'error': 'unauthorized'}), 401


@bp.get('/ping')
def ping():
    return jsonify({'admin': 'ok'})


@bp.post('/tickets')
def create_ticket():
    data = request.get_json(silent=True) or {}
    owner_id = data.get('owner_id')
    if not isinstance(owner_id, str) or not owner_id:
        return jsonify({'error': 'missing_owner_id'}), 400
    event_id = data.get('event_id')

    ticket, issued = issue_ticket(issuer_from_config(), owner_id, event_id)
    png = make_qr_bytes(issued.payload)

    accept = request.headers.get('Accept', '')
    if 'image/png' in accept:
        return send_file(
            io.BytesIO(png), mimetype='image/png', as_attachment=False,
            download_name=f"ticket_{ticket.id}.png", etag=False,
        )
    return jsonify({
        'ok': True,
        'ticket_id': ticket.id,
        'payload': issued.payload,
        'qr_png_b64': base64.b64encode(png).decode('ascii'),
    }), 201


@bp.get('/tickets/<ticket_id>')
def ticket_status(ticket_id: str):
    ticket = db.session.get(Ticket, ticket_id)
    if ticket is None:
        return jsonify({'error': 'not_found'}), 404
    return jsonify(ticket.to_public_dict())


def _transition(ticket_id, fn, status):
    if db.session.get(Ticket, ticket_id) is None:
        return jsonify({'error': 'not_found'}), 404
    if not fn(SqlTicketStore(), ticket_id):
        return jsonify({'error': 'invalid_transition'}), 409
    return jsonify({'ok': True, 'ticket_id': ticket_id, 'status': status})


@bp.post('/tickets/<ticket_id>/refund')
def refund(ticket_id: str):
    return _transition(ticket_id, refund_ticket, 'refunded')


@bp.post('/tickets/<ticket_id>/cancel')
def cancel(ticket_id: str):
    return _transition(ticket_id, cancel_ticket, 'cancelled')
