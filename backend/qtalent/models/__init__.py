from .user import User, UserType
from .talent_profile import TalentProfile
from .booking import Booking
from .booking_status import BookingStatus, PaymentStatus, GigApplicationStatus
from .gig_application import GigApplication
from .payment import Payment, PaymentMethod, DeclineReason
from .notification import Notification, NotificationType

__all__ = [
    "User",
    "UserType",
    "TalentProfile",
    "Booking",
    "BookingStatus",
    "PaymentStatus",
    "GigApplicationStatus",
    "GigApplication",
    "Payment",
    "PaymentMethod",
    "DeclineReason",
    "Notification",
    "NotificationType",
]
