#!/usr/bin/env python3
import sys, time, pathlib

# Usage: python scripts/check_credential.py '<PAYLOAD JSON>' [SECRET_HEX]
# Decodes a scanned credential, reports its age and, given the ticket's
# secret, which time step the code matches. Does not touch the database.

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ticketgate.services import totp
from ticketgate.services.credentials import PayloadError, decode_payload


def err(msg):
    print(f"ERROR: {msg}")
    sys.exit(1)


if len(sys.argv) < 2:
    err("Usage: check_credential.py <PAYLOAD> [SECRET_HEX]")

try:
    cred = decode_payload(sys.argv[1].strip())
except PayloadError as e:
    err(f"decode: {e}")

now = time.time()
report = {
    'ticket_id': cred.ticket_id,
    'owner_id': cred.owner_id,
    'version': cred.version,
    'age_s': round(now - cred.issued_at_ms / 1000, 1),
}
if len(sys.argv) >= 3:
    try:
        key = bytes.fromhex(sys.argv[2].strip())
    except ValueError:
        err("secret is not hex")
    report['step_offset'] = totp.match_interval(key, cred.code, now, window=10)
print(report)
