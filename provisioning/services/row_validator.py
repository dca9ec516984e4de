"""
Row validator for decoded roster rows.
Applies domain constraints and classifies each row as admittable or rejected.
"""
import re
from typing import Dict, Optional, Tuple

from provisioning.models.upload_job import EntityKind
from provisioning.repositories.member_store import MemberStore
from provisioning.services.row_decoder import DecodedRow, schema_for

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+'-]+@[A-Za-z0-9-]+(\.[A-Za-z0-9-]+)*\.[A-Za-z]{2,}$")

# Decoded header name -> profile attribute name
PROFILE_ATTRIBUTES = {
    EntityKind.STUDENT: {"Degree": "degree", "Branch": "branch", "Year": "year"},
    EntityKind.TRAINER: {"Department": "department", "Specialization": "specialization"},
}


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AdmittedRecord:
    """A row that passed validation and may be provisioned."""

    def __init__(
        self,
        row_number: int,
        kind: EntityKind,
        full_name: str,
        email: str,
        raw_data: Dict[str, str],
        roll_number: Optional[str] = None,
        attributes: Optional[dict] = None
    ):
        self.row_number = row_number
        self.kind = kind
        self.full_name = full_name
        self.email = email
        self.raw_data = raw_data
        self.roll_number = roll_number
        self.attributes = attributes or {}

    def __repr__(self):
        return f"AdmittedRecord(row_number={self.row_number}, email={self.email})"


class ValidationOutcome:
    """Either an admitted record or the reason the row was rejected."""

    def __init__(self, row: DecodedRow, record: Optional[AdmittedRecord] = None, reason: Optional[str] = None):
        self.row = row
        self.record = record
        self.reason = reason

    @property
    def admitted(self) -> bool:
        return self.record is not None


class RowValidator:
    """
    Validates the rows of one upload, in file order.

    Holds the emails and roll numbers admitted earlier in the same file so that
    later repeats are rejected as duplicates within the file. Never writes.
    """

    def __init__(self, kind: EntityKind, tenant_id: str, lookup: MemberStore):
        self.kind = EntityKind(kind)
        self.tenant_id = tenant_id
        self.lookup = lookup
        self.schema = schema_for(kind)
        self._seen_emails: Dict[str, int] = {}
        self._seen_roll_numbers: Dict[str, int] = {}

    def validate(self, row: DecodedRow) -> ValidationOutcome:
        """
        Check one decoded row, stopping at the first failed constraint.

        Raises:
            DynamoDBException: If a uniqueness lookup cannot be served
        """
        if row.is_error:
            return ValidationOutcome(row, reason=row.error)

        values = {name: (row.fields.get(name) or "").strip() for name in self.schema.columns}

        reason = self._check_required(values)
        if reason is None:
            reason = self._check_email_syntax(values["Email"])
        if reason is None and self.kind == EntityKind.STUDENT:
            reason, year = self._check_year(values["Year"])
            if reason is None:
                values["Year"] = year
        if reason is None:
            reason = self._check_email_unique(values["Email"])
        if reason is None and self.kind == EntityKind.STUDENT:
            reason = self._check_roll_number_unique(values["Roll Number"])

        if reason is not None:
            return ValidationOutcome(row, reason=reason)

        record = self._to_record(row, values)
        self._seen_emails[record.email] = row.row_number
        if record.roll_number is not None:
            self._seen_roll_numbers[record.roll_number] = row.row_number
        return ValidationOutcome(row, record=record)

    def _check_required(self, values: dict) -> Optional[str]:
        for column in self.schema.required:
            if not values[column]:
                return f"{column} is required"
        return None

    def _check_email_syntax(self, email: str) -> Optional[str]:
        if not EMAIL_PATTERN.match(email):
            return f"Invalid email address: {email}"
        return None

    def _check_year(self, year: str) -> Tuple[Optional[str], Optional[int]]:
        if not year:
            return None, None
        if not year.isdecimal() or int(year) <= 0:
            return f"Year must be a positive integer, got: {year}", None
        return None, int(year)

    def _check_email_unique(self, email: str) -> Optional[str]:
        key = normalize_email(email)
        if key in self._seen_emails:
            return f"Duplicate within file: email {email} already appears in row {self._seen_emails[key]}"
        if self.lookup.email_exists(key):
            return f"Email already exists: {email}"
        return None

    def _check_roll_number_unique(self, roll_number: str) -> Optional[str]:
        if roll_number in self._seen_roll_numbers:
            return (
                f"Duplicate within file: roll number {roll_number} "
                f"already appears in row {self._seen_roll_numbers[roll_number]}"
            )
        if self.lookup.roll_number_exists(self.tenant_id, roll_number):
            return f"Roll number already exists: {roll_number}"
        return None

    def _to_record(self, row: DecodedRow, values: dict) -> AdmittedRecord:
        attributes = {
            attribute: values[column]
            for column, attribute in PROFILE_ATTRIBUTES[self.kind].items()
            if values[column] not in ("", None)
        }
        return AdmittedRecord(
            row_number=row.row_number,
            kind=self.kind,
            full_name=values["Full Name"],
            email=normalize_email(values["Email"]),
            raw_data=dict(row.fields),
            roll_number=values["Roll Number"] if self.kind == EntityKind.STUDENT else None,
            attributes=attributes
        )
