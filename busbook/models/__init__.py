from .models import *

__all__ = [
    "Base",
    "Bus",
    "Booking",
    "AuditLog",
]
