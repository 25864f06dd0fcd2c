class TicketGateError(Exception):
    """Base class for infrastructure faults raised by ticketgate."""


class IssuanceError(TicketGateError):
    """A credential could not be issued (e.g. the entropy source failed)."""


class StoreError(TicketGateError):
    """The ticket store could not be read or written."""


class ValidatorError(TicketGateError):
    """Validation could not reach a verdict; the caller should ask to retry."""


class RateLimited(TicketGateError):
    pass
