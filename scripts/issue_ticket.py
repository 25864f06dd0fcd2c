import os
import sys
import base64
import requests

# Usage: OWNER_ID=user-123 [EVENT_ID=...] [WANT_PNG=1] python scripts/issue_ticket.py

BASE_URL = os.environ.get('BASE_URL', 'http://localhost:5000')
ADMIN_API_KEY = os.environ.get('ADMIN_API_KEY')

if not ADMIN_API_KEY:
    print('Missing ADMIN_API_KEY in env')
    sys.exit(1)

owner_id = os.environ.get('OWNER_ID')
if not owner_id:
    print('Missing OWNER_ID in env')
    sys.exit(1)

payload = {'owner_id': owner_id, 'event_id': os.environ.get('EVENT_ID')}
headers = {'X-Admin-Key': ADMIN_API_KEY}
out = os.environ.get('OUT', 'ticket.png')

if os.environ.get('WANT_PNG', '0') == '1':
    r = requests.post(f"{BASE_URL}/admin/tickets", headers={**headers, 'Accept': 'image/png'}, json=payload, timeout=30)
    if r.status_code != 200:
        print('Error:', r.status_code, r.text)
        sys.exit(1)
    with open(out, 'wb') as f:
        f.write(r.content)
    print('PNG saved to', out)
    sys.exit(0)

r = requests.post(f"{BASE_URL}/admin/tickets", headers=headers, json=payload, timeout=30)
if r.status_code != 201:
    print('Error:', r.status_code, r.text)
    sys.exit(1)
res = r.json()
print('ticket_id:', res['ticket_id'])
print('payload:', res['payload'])
with open(out, 'wb') as f:
    f.write(base64.b64decode(res['qr_png_b64']))
print('PNG saved to', out)
