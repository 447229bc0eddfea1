"""
EZApply - SQLAlchemy ORM Models
Account lifecycle, archive, ledger and disclosure tables
"""

from enum import Enum
from sqlalchemy import (
    Column, String, Integer, DateTime, Date, Text, JSON, ForeignKey, Boolean,
    Index, UniqueConstraint, Enum as SQLEnum, text,
)
from sqlalchemy.orm import relationship
from ..database import Base, utc_now


# =============================================================================
# ENUMS
# =============================================================================

class UserRole(str, Enum):
    """Account roles relevant to lifecycle and disclosure gating."""
    CUSTOMER = "customer"
    COMPANY = "company"
    ADMIN = "admin"


class AccountState(str, Enum):
    """Lifecycle state derived from the account's lifecycle columns."""
    ACTIVE = "active"
    DEACTIVATION_REQUESTED = "deactivation_requested"
    DEACTIVATED = "deactivated"


class ReactivationStatus(str, Enum):
    """Review status of a reactivation request."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class TransactionType(str, Enum):
    """Credit ledger entry types."""
    SIGNUP_BONUS = "signup_bonus"
    TOP_UP = "top_up"
    USAGE = "usage"
    REFUND = "refund"


# =============================================================================
# ACCOUNTS
# =============================================================================

class UserDB(Base):
    """Account identity plus lifecycle columns owned by the state machine."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)  # UUID
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.CUSTOMER.value)
    email_verified_at = Column(DateTime, nullable=True)

    # Incremented to invalidate every token issued before the change
    session_version = Column(Integer, nullable=False, default=0)

    # ==========================================================================
    # LIFECYCLE - mutated only by AccountStateMachine / ArchivalEngine
    # ==========================================================================
    deactivation_requested_at = Column(DateTime, nullable=True)
    deactivation_scheduled_at = Column(DateTime, nullable=True, index=True)
    is_deactivated = Column(Boolean, nullable=False, default=False, index=True)

    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    # Relationships (cascade mirrors the foreign-key cascades)
    basic_info = relationship("BasicInfoDB", back_populates="user", uselist=False, cascade="all, delete-orphan")
    address = relationship("UserAddressDB", back_populates="user", uselist=False, cascade="all, delete-orphan")
    financial = relationship("FinancialDB", back_populates="user", uselist=False, cascade="all, delete-orphan")
    affiliations = relationship("AffiliationDB", back_populates="user", cascade="all, delete-orphan")
    attachments = relationship("CustomerAttachmentDB", back_populates="user", cascade="all, delete-orphan")
    applications = relationship(
        "ApplicationDB", back_populates="user", cascade="all, delete-orphan",
        foreign_keys="ApplicationDB.user_id",
    )
    company = relationship("CompanyDB", back_populates="user", uselist=False, cascade="all, delete-orphan")
    credit_transactions = relationship("CreditTransactionDB", back_populates="user", cascade="all, delete-orphan")
    reactivation_requests = relationship(
        "ReactivationRequestDB", back_populates="user", cascade="all, delete-orphan",
        foreign_keys="ReactivationRequestDB.user_id",
    )

    @property
    def state(self) -> AccountState:
        if self.is_deactivated:
            return AccountState.DEACTIVATED
        if self.deactivation_requested_at is not None:
            return AccountState.DEACTIVATION_REQUESTED
        return AccountState.ACTIVE


# =============================================================================
# PROFILE SUB-ENTITIES (read for archival, written for restoration)
# =============================================================================

class BasicInfoDB(Base):
    """Applicant profile."""
    __tablename__ = "basic_info"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    birth_date = Column(Date, nullable=True)
    phone = Column(String(30), nullable=True)
    facebook = Column(String(255), nullable=True)
    linkedin = Column(String(255), nullable=True)
    viber = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=utc_now)

    user = relationship("UserDB", back_populates="basic_info")


class UserAddressDB(Base):
    """Applicant address (PSGC codes and names)."""
    __tablename__ = "user_addresses"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    region_code = Column(String(20), nullable=True)
    region_name = Column(String(255), nullable=True)
    province_code = Column(String(20), nullable=True)
    province_name = Column(String(255), nullable=True)
    citymun_code = Column(String(20), nullable=True)
    citymun_name = Column(String(255), nullable=True)
    barangay_code = Column(String(20), nullable=True)
    barangay_name = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utc_now)

    user = relationship("UserDB", back_populates="address")


class FinancialDB(Base):
    """Applicant financial data."""
    __tablename__ = "financials"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    annual_income = Column(String(100), nullable=True)
    salary = Column(String(100), nullable=True)
    income_source = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=utc_now)

    user = relationship("UserDB", back_populates="financial")


class AffiliationDB(Base):
    """Institution affiliation of an applicant."""
    __tablename__ = "affiliations"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    institution = Column(String(255), nullable=False)
    position = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utc_now)

    user = relationship("UserDB", back_populates="affiliations")


class CustomerAttachmentDB(Base):
    """Uploaded applicant document reference."""
    __tablename__ = "customer_attachments"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    attachment_type = Column(String(50), nullable=False)
    attachment_path = Column(String(500), nullable=False)
    created_at = Column(DateTime, default=utc_now)

    user = relationship("UserDB", back_populates="attachments")


class CompanyDB(Base):
    """Franchise company owned by a company account."""
    __tablename__ = "companies"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    company_name = Column(String(255), nullable=False)
    brand_name = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    country = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    status = Column(String(20), default="pending")
    created_at = Column(DateTime, default=utc_now)

    user = relationship("UserDB", back_populates="company")


class ApplicationDB(Base):
    """A customer's franchise application to a company."""
    __tablename__ = "applications"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="SET NULL"), nullable=True, index=True)
    desired_location = Column(String(255), nullable=True)
    deadline_date = Column(Date, nullable=True)
    status = Column(String(20), default="pending")
    created_at = Column(DateTime, default=utc_now)

    user = relationship("UserDB", back_populates="applications", foreign_keys=[user_id])


# =============================================================================
# ARCHIVE / REACTIVATION
# =============================================================================

class ArchivedUserDB(Base):
    """
    Point-in-time snapshot of an account and its dependent records.

    One row per archival event. At most one row per original account may be
    live (restored_at IS NULL); a restored account archived again gets a new row.
    """
    __tablename__ = "archived_users"

    id = Column(String(36), primary_key=True)
    original_user_id = Column(String(36), nullable=False, index=True)  # no FK - the account may be gone
    email = Column(String(255), nullable=False)
    snapshot_version = Column(Integer, nullable=False)

    user_data = Column(JSON, nullable=False)
    basic_info_data = Column(JSON, nullable=True)
    address_data = Column(JSON, nullable=True)
    financial_data = Column(JSON, nullable=True)
    affiliations_data = Column(JSON, nullable=True)
    attachments_data = Column(JSON, nullable=True)
    applications_data = Column(JSON, nullable=True)
    company_data = Column(JSON, nullable=True)

    archived_at = Column(DateTime, nullable=False, index=True)
    archived_by = Column(String(36), nullable=True)  # null when archived by the scheduler
    restored_at = Column(DateTime, nullable=True)
    restored_by = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=utc_now)

    __table_args__ = (
        UniqueConstraint("original_user_id", "archived_at", name="uq_archived_users_user_archived_at"),
        Index(
            "uq_archived_users_live",
            "original_user_id",
            unique=True,
            sqlite_where=text("restored_at IS NULL"),
            postgresql_where=text("restored_at IS NULL"),
        ),
    )


class ReactivationRequestDB(Base):
    """A deactivated user's request to have the account restored."""
    __tablename__ = "reactivation_requests"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    reason = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=ReactivationStatus.PENDING.value)
    reviewed_by = Column(String(36), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    admin_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    user = relationship("UserDB", back_populates="reactivation_requests", foreign_keys=[user_id])

    __table_args__ = (
        Index(
            "uq_reactivation_requests_pending",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )


# =============================================================================
# CREDIT LEDGER / DISCLOSURE
# =============================================================================

class CreditTransactionDB(Base):
    """
    Immutable ledger entry. Balance is the sum of amounts per user.
    Append-only - rows are never updated or deleted by the application.
    """
    __tablename__ = "credit_transactions"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)  # signed
    type = Column(SQLEnum(TransactionType, native_enum=False, length=20), nullable=False)
    description = Column(String(255), nullable=True)
    # Renamed from 'metadata' which is reserved in SQLAlchemy
    transaction_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=utc_now, nullable=False, index=True)

    user = relationship("UserDB", back_populates="credit_transactions")


class ApplicantViewDB(Base):
    """
    Disclosure grant: one paid field of one application, visible to one viewer.
    Never deleted; the unique key is the only concurrency control on charging.
    """
    __tablename__ = "applicant_views"

    id = Column(String(36), primary_key=True)
    company_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)  # viewer
    user_id = Column(String(36), nullable=True)  # applicant at purchase time
    application_id = Column(String(36), nullable=False, index=True)
    field_key = Column(String(50), nullable=False)
    paid = Column(Boolean, nullable=False, default=True)
    cost = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("company_id", "application_id", "field_key", name="uq_applicant_views_viewer_app_field"),
    )


class PricingSettingDB(Base):
    """Admin-managed disclosure cost per field key."""
    __tablename__ = "pricing_settings"

    field_key = Column(String(50), primary_key=True)
    cost = Column(Integer, nullable=False)
    updated_by = Column(String(36), nullable=True)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)
