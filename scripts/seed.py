import os, sys, pathlib
# Ensure project root is on PYTHONPATH when running directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ticketgate import create_app
from ticketgate.services.credentials import issuer_from_config
from ticketgate.services.tickets import issue_ticket

app = create_app()
with app.app_context():
    owner_id = os.environ.get('OWNER_ID', 'demo-user')
    ticket, issued = issue_ticket(issuer_from_config(), owner_id, event_id='demo-event')
    print('ticket_id:', ticket.id)
    print('payload:', issued.payload)
