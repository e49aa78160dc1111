from microloan.models.audit_log import AuditLog
from microloan.models.client import Client
from microloan.models.guarantee import Guarantee
from microloan.models.loan import Loan
from microloan.models.payment import Payment
from microloan.models.rate_plan import RatePlan

__all__ = [
    "AuditLog",
    "Client",
    "Guarantee",
    "Loan",
    "Payment",
    "RatePlan",
]
