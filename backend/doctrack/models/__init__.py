from doctrack.models.profile import Profile
from doctrack.models.document import Document, VerificationRecord, TranslatedRecord
from doctrack.models.payment import Payment
from doctrack.models.action_log import ActionLog
from doctrack.models.outbox import OutboxEntry

__all__ = [
    "Profile",
    "Document",
    "VerificationRecord",
    "TranslatedRecord",
    "Payment",
    "ActionLog",
    "OutboxEntry",
]
