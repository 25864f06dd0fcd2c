import logging
import redis
from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError
from .errors import RateLimited, ValidatorError
from .models import db, Ticket, ScanLog
from .services.credentials import issuer_from_config
from .services.qr import make_qr_data_url
from .services.rate_limit import check_rate_scanner
from .services.store import SqlTicketStore
from .services.tickets import render_credential
from .services.validator import Reason, validator_from_config

log = logging.getLogger(__name__)

bp = Blueprint('api', __name__)

_REASON_STATUS = {
    Reason.OK: 200,
    Reason.MALFORMED_PAYLOAD: 400,
    Reason.PAYLOAD_EXPIRED: 400,
    Reason.CODE_INVALID: 400,
    Reason.OWNER_MISMATCH: 403,
    Reason.TICKET_NOT_FOUND: 404,
    Reason.INVALID_STATUS: 409,
    Reason.ALREADY_USED: 409,
}


def _principal():
    auth = current_app.extensions['ticketgate_auth']
    if not auth.enabled:
        return None, (jsonify({'error': 'auth_disabled'}), 401)
    principal = auth.authenticate(request)
    if principal is None:
        return None, (jsonify({'error': 'unauthorized'}), 401)
    return principal, None


def _record_scan(result, scanner_id):
    db.session.add(ScanLog(
        ticket_id=result.ticket_id,
        scanner_id=scanner_id,
        valid=result.valid,
        reason=result.reason.value,
    ))
    try:
        db.session.commit()
    except SQLAlchemyError:
        # the ticket state is already committed; losing an audit row must not flip the verdict
        db.session.rollback()
        log.exception('failed to write scan log for ticket %s', result.ticket_id)


def _try_again():
    return jsonify({'error': 'try_again', 'message': 'Could not verify ticket, please scan again'}), 503


def _scan(raw_payload):
    principal, err = _principal()
    if err:
        return err
    if not principal.can_scan():
        return jsonify({'error': 'forbidden'}), 403
    try:
        check_rate_scanner(principal.id)
    except RateLimited:
        return jsonify({'error': 'rate_limited'}), 429
    except redis.RedisError:
        log.exception('rate limit backend unavailable for scanner %s', principal.id)
        return _try_again()

    validator = validator_from_config(SqlTicketStore())
    try:
        result = validator.validate(raw_payload, principal.id)
    except ValidatorError:
        log.exception('validation fault for scanner %s', principal.id)
        return _try_again()

    _record_scan(result, principal.id)
    return jsonify(result.to_dict()), _REASON_STATUS[result.reason]


@bp.post('/scan')
def scan():
    data = request.get_json(silent=True) or {}
    return _scan(data.get('payload'))


@bp.post('/scan/image')
def scan_image():
    # Accept multipart/form-data with file field 'image'
    if 'image' not in request.files:
        return jsonify({'error': 'missing_file'}), 400
    data = request.files['image'].read()
    if not data:
        return jsonify({'error': 'empty_file'}), 400
    try:
        import numpy as np
        import cv2
        arr = np.frombuffer(data, dtype=np.uint8)
        img = cv2.imdecode(arr, cv2.IMREAD_COLOR)
        if img is None:
            return jsonify({'error': 'bad_image'}), 400
        detector = cv2.QRCodeDetector()
        val, points, _ = detector.detectAndDecode(img)
    except Exception as e:
        # also covers deployments installed without the decode extra
        log.exception('qr image decode failed')
        return jsonify({'error': 'decode_failed', 'detail': str(e)}), 500
    if not val:
        return jsonify({'error': 'no_qr_found'}), 400
    return _scan(val)


@bp.get('/tickets/<ticket_id>/credential')
def credential(ticket_id: str):
    principal, err = _principal()
    if err:
        return err
    ticket = db.session.get(Ticket, ticket_id)
    if ticket is None or not principal.can_view(ticket.owner_id):
        return jsonify({'error': 'not_found'}), 404
    if ticket.status != 'valid':
        return jsonify({'error': 'not_valid', 'status': ticket.status}), 409
    cred = render_credential(issuer_from_config(), ticket)
    payload = cred.encode()
    return jsonify({
        'ticket_id': ticket.id,
        'payload': payload,
        'qr_data_url': make_qr_data_url(payload),
    }), 200, {'Cache-Control': 'no-store'}
