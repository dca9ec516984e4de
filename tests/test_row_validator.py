"""
Unit tests for RowValidator.
Uses a mocked member store for uniqueness lookups.
"""
from unittest.mock import Mock
import pytest
from provisioning.core.exceptions import DynamoDBException
from provisioning.models.upload_job import EntityKind
from provisioning.services.row_decoder import DecodedRow
from provisioning.services.row_validator import RowValidator


def student_row(row_number, name="Asha Rao", email="asha@college.test", roll="CS001", year="2", **extra):
    fields = {"Full Name": name, "Email": email, "Roll Number": roll, "Year": year}
    fields.update(extra)
    return DecodedRow(row_number, fields)


class TestRowValidator:
    """Test suite for RowValidator."""

    @pytest.fixture
    def lookup(self):
        store = Mock()
        store.email_exists.return_value = False
        store.roll_number_exists.return_value = False
        return store

    @pytest.fixture
    def validator(self, lookup):
        return RowValidator(EntityKind.STUDENT, "tenant-1", lookup)

    def test_valid_row_is_admitted(self, validator):
        outcome = validator.validate(student_row(1, Degree="B.Tech", Branch="CSE"))

        assert outcome.admitted
        record = outcome.record
        assert record.email == "asha@college.test"
        assert record.roll_number == "CS001"
        assert record.attributes == {"degree": "B.Tech", "branch": "CSE", "year": 2}

    def test_decoder_error_is_rejected_without_lookup(self, validator, lookup):
        outcome = validator.validate(DecodedRow(1, {}, error="Expected 6 columns, found 2"))

        assert not outcome.admitted
        assert outcome.reason == "Expected 6 columns, found 2"
        lookup.email_exists.assert_not_called()

    def test_missing_required_field(self, validator):
        outcome = validator.validate(student_row(1, email="  "))

        assert outcome.reason == "Email is required"

    def test_invalid_email(self, validator, lookup):
        outcome = validator.validate(student_row(1, email="not-an-email"))

        assert outcome.reason == "Invalid email address: not-an-email"
        lookup.email_exists.assert_not_called()

    @pytest.mark.parametrize("year", ["0", "-1", "two", "2.5"])
    def test_invalid_year(self, validator, year):
        outcome = validator.validate(student_row(1, year=year))

        assert outcome.reason == f"Year must be a positive integer, got: {year}"

    def test_blank_year_is_allowed(self, validator):
        outcome = validator.validate(student_row(1, year=""))

        assert outcome.admitted
        assert "year" not in outcome.record.attributes

    def test_email_already_exists(self, validator, lookup):
        lookup.email_exists.return_value = True

        outcome = validator.validate(student_row(1, email="Asha@College.test"))

        assert outcome.reason == "Email already exists: Asha@College.test"
        lookup.email_exists.assert_called_once_with("asha@college.test")

    def test_roll_number_already_exists_in_tenant(self, validator, lookup):
        lookup.roll_number_exists.return_value = True

        outcome = validator.validate(student_row(1))

        assert outcome.reason == "Roll number already exists: CS001"
        lookup.roll_number_exists.assert_called_once_with("tenant-1", "CS001")

    def test_duplicate_email_within_file_is_case_insensitive(self, validator):
        validator.validate(student_row(1))

        outcome = validator.validate(student_row(2, email="ASHA@college.test", roll="CS002"))

        assert outcome.reason == "Duplicate within file: email ASHA@college.test already appears in row 1"

    def test_duplicate_roll_number_within_file(self, validator):
        validator.validate(student_row(1))

        outcome = validator.validate(student_row(2, email="ravi@college.test", roll="CS001"))

        assert outcome.reason == "Duplicate within file: roll number CS001 already appears in row 1"

    def test_within_file_check_precedes_storage_lookup(self, validator, lookup):
        validator.validate(student_row(1))
        lookup.email_exists.return_value = True

        outcome = validator.validate(student_row(2, roll="CS002"))

        assert outcome.reason.startswith("Duplicate within file")

    def test_rejected_rows_do_not_register_as_seen(self, validator):
        validator.validate(student_row(1, year="zero"))

        outcome = validator.validate(student_row(2))

        assert outcome.admitted

    def test_lookup_failure_propagates(self, validator, lookup):
        lookup.email_exists.side_effect = DynamoDBException("Failed to look up uniqueness claim")

        with pytest.raises(DynamoDBException):
            validator.validate(student_row(1))

    def test_trainer_rows_skip_roll_number_checks(self, lookup):
        validator = RowValidator(EntityKind.TRAINER, "tenant-1", lookup)
        row = DecodedRow(1, {
            "Full Name": "Dr. Meera Iyer",
            "Email": "meera@college.test",
            "Department": "Physics",
            "Specialization": "Optics"
        })

        outcome = validator.validate(row)

        assert outcome.admitted
        assert outcome.record.roll_number is None
        assert outcome.record.attributes == {"department": "Physics", "specialization": "Optics"}
        lookup.roll_number_exists.assert_not_called()
