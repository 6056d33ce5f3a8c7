import enum


class BookingStatus(str, enum.Enum):
    """Central booking status enumeration used across the application."""
    PENDING = "pending"
    APPROVED = "approved"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    DECLINED = "declined"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    DECLINED = "declined"


class GigApplicationStatus(str, enum.Enum):
    INTERESTED = "interested"
    INVOICE_SENT = "invoice_sent"
    CONFIRMED = "confirmed"
    DECLINED = "declined"


# Allowed booking transitions. Anything not listed here is rejected.
# approved -> approved covers re-invoicing after a declined payment.
BOOKING_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.APPROVED, BookingStatus.DECLINED}),
    BookingStatus.APPROVED: frozenset(
        {BookingStatus.APPROVED, BookingStatus.CONFIRMED, BookingStatus.DECLINED}
    ),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.DECLINED: frozenset(),
}

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.DECLINED}),
    PaymentStatus.COMPLETED: frozenset(),
    PaymentStatus.DECLINED: frozenset(),
}


def booking_sources(target: BookingStatus) -> list[BookingStatus]:
    """Return every status from which ``target`` may be entered."""
    return [src for src, dests in BOOKING_TRANSITIONS.items() if target in dests]


def can_transition(current: BookingStatus | str, target: BookingStatus | str) -> bool:
    return BookingStatus(target) in BOOKING_TRANSITIONS[BookingStatus(current)]
