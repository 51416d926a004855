from .config import get_firestore_client, initialize_firebase, FIREBASE_CONFIG
from .models import TermRecord, MIN_TERM_NUMBER, MAX_TERM_NUMBER, TERM_NUMBERS
from .semester import TermCalendar, compute_window, adjust_for_weekend
from .exceptions import TermError, ValidationError, ConflictError, NotFoundError, StoreError
from .auth import (
    AuthenticatedUser,
    UserRole,
    get_current_user,
    get_privileged_user,
    validate_email_domain,
    ALLOWED_EMAIL_DOMAIN
)
