import random
import string
from datetime import datetime

from sqlalchemy.orm import Session

from app.models.ticket import Ticket
from app.utils.clock import utcnow

_SUFFIX_CHARS = string.ascii_uppercase + string.digits


def generate_ticket_code(db: Session, now: datetime | None = None) -> str:
    """Generate a unique 'TK<yymmddHHMMSS><4 chars>' ticket code."""
    stamp = (now or utcnow()).strftime("%y%m%d%H%M%S")
    while True:
        code = "TK" + stamp + "".join(random.choices(_SUFFIX_CHARS, k=4))
        if not db.query(Ticket.id).filter(Ticket.tickets_code == code).first():
            return code
