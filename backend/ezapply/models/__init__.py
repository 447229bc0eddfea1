"""EZApply - Data Models"""
from .db_models import (
    # Enums
    UserRole, AccountState, ReactivationStatus, TransactionType,
    # Accounts and profile sub-entities
    UserDB, BasicInfoDB, UserAddressDB, FinancialDB, AffiliationDB,
    CustomerAttachmentDB, CompanyDB, ApplicationDB,
    # Lifecycle
    ArchivedUserDB, ReactivationRequestDB,
    # Ledger / disclosure
    CreditTransactionDB, ApplicantViewDB, PricingSettingDB,
)
from .snapshot import SNAPSHOT_VERSION, ArchiveSnapshot

__all__ = [
    "UserRole", "AccountState", "ReactivationStatus", "TransactionType",
    "UserDB", "BasicInfoDB", "UserAddressDB", "FinancialDB", "AffiliationDB",
    "CustomerAttachmentDB", "CompanyDB", "ApplicationDB",
    "ArchivedUserDB", "ReactivationRequestDB",
    "CreditTransactionDB", "ApplicantViewDB", "PricingSettingDB",
    "SNAPSHOT_VERSION", "ArchiveSnapshot",
]
