from .errors import error_response
from .email import send_email
