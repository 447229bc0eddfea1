"""
EZApply - Archive Snapshot Schema

Structured, versioned copy of an account and its dependent records taken
immediately before deactivation. Archival dumps each part into its own JSON
column; restoration decodes it back through these models so a malformed or
unknown-version archive is rejected instead of trusted.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from ..errors import SnapshotInvalid


SNAPSHOT_VERSION = 1


class _SnapshotPart(BaseModel):
    # Unknown keys are dropped so older archives with extra columns still decode
    model_config = ConfigDict(extra="ignore", from_attributes=True)


# =============================================================================
# PER-ENTITY SNAPSHOTS
# =============================================================================

class UserSnapshot(_SnapshotPart):
    id: str
    email: str
    password_hash: str
    role: str
    email_verified_at: Optional[datetime] = None
    credit_balance: int = 0
    deactivation_requested_at: Optional[datetime] = None
    deactivation_scheduled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class BasicInfoSnapshot(_SnapshotPart):
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    birth_date: Optional[date] = None
    phone: Optional[str] = None
    facebook: Optional[str] = None
    linkedin: Optional[str] = None
    viber: Optional[str] = None


class AddressSnapshot(_SnapshotPart):
    id: str
    region_code: Optional[str] = None
    region_name: Optional[str] = None
    province_code: Optional[str] = None
    province_name: Optional[str] = None
    citymun_code: Optional[str] = None
    citymun_name: Optional[str] = None
    barangay_code: Optional[str] = None
    barangay_name: Optional[str] = None


class FinancialSnapshot(_SnapshotPart):
    id: str
    annual_income: Optional[str] = None
    salary: Optional[str] = None
    income_source: Optional[str] = None


class AffiliationSnapshot(_SnapshotPart):
    id: str
    institution: str
    position: Optional[str] = None


class AttachmentSnapshot(_SnapshotPart):
    id: str
    attachment_type: str
    attachment_path: str


class ApplicationSnapshot(_SnapshotPart):
    id: str
    company_id: Optional[str] = None
    desired_location: Optional[str] = None
    deadline_date: Optional[date] = None
    status: Optional[str] = None
    created_at: Optional[datetime] = None


class CompanySnapshot(_SnapshotPart):
    id: str
    company_name: str
    brand_name: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None


# =============================================================================
# FULL SNAPSHOT
# =============================================================================

# Snapshot attribute -> archived_users column
ARCHIVE_COLUMNS = {
    "user": "user_data",
    "basic_info": "basic_info_data",
    "address": "address_data",
    "financial": "financial_data",
    "affiliations": "affiliations_data",
    "attachments": "attachments_data",
    "applications": "applications_data",
    "company": "company_data",
}


class ArchiveSnapshot(BaseModel):
    """Account graph at archival time. Absent sub-records are None."""

    version: int = SNAPSHOT_VERSION
    user: UserSnapshot
    basic_info: Optional[BasicInfoSnapshot] = None
    address: Optional[AddressSnapshot] = None
    financial: Optional[FinancialSnapshot] = None
    affiliations: Optional[List[AffiliationSnapshot]] = None
    attachments: Optional[List[AttachmentSnapshot]] = None
    applications: Optional[List[ApplicationSnapshot]] = None
    company: Optional[CompanySnapshot] = None

    def to_columns(self) -> Dict[str, Any]:
        """JSON-safe column values for an archived_users row."""
        dumped = self.model_dump(mode="json")
        columns = {column: dumped[attr] for attr, column in ARCHIVE_COLUMNS.items()}
        columns["snapshot_version"] = self.version
        return columns

    @classmethod
    def from_record(cls, record) -> "ArchiveSnapshot":
        """
        Decode an archived_users row.

        Raises SnapshotInvalid for unknown versions or data that does not
        match the schema.
        """
        if record.snapshot_version != SNAPSHOT_VERSION:
            raise SnapshotInvalid(
                f"Unsupported snapshot version {record.snapshot_version} for archive {record.id}"
            )

        payload = {attr: getattr(record, column) for attr, column in ARCHIVE_COLUMNS.items()}
        payload["version"] = record.snapshot_version
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            raise SnapshotInvalid(f"Archive {record.id} failed snapshot validation: {e.error_count()} error(s)") from e
