from .document_type import DocumentType
from .permission import DocumentPermission, PermissionScope
from .credit_balance import CreditBalance
from .credit_package import CreditPackage
from .credit_transaction import CreditTransaction, TransactionStatus, TransactionType
from .usage_log import UsageLog
from .document_stats import DocumentStats

__all__ = [
    "DocumentType",
    "DocumentPermission",
    "PermissionScope",
    "CreditBalance",
    "CreditPackage",
    "CreditTransaction",
    "TransactionStatus",
    "TransactionType",
    "UsageLog",
    "DocumentStats",
]
