"""
Validation Service — Per-stage rule evaluation for onboarding data.

Each stage has one pure rule function producing field-keyed errors and
warnings. Missing required fields are errors; recommended-but-optional data
produces warnings. The same result is used in two modes: advisory during
auto-save (stored, never blocks) and enforcing on explicit stage completion.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Optional

from villa_onboarding.catalog import get_stage
from villa_onboarding.utils.validators import (
    has_value, parse_number, parse_date, validate_email, validate_phone, validate_iban,
)


@dataclass
class ValidationResult:
    errors: Dict[str, str] = field(default_factory=dict)
    warnings: Dict[str, str] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def without_fields(self, field_names: Iterable[str]) -> "ValidationResult":
        """Drop findings for fields the user explicitly skipped."""
        excluded = set(field_names)
        return ValidationResult(
            errors={k: v for k, v in self.errors.items() if k not in excluded},
            warnings={k: v for k, v in self.warnings.items() if k not in excluded},
        )

    def to_dict(self) -> dict:
        return {"is_valid": self.is_valid, "errors": dict(self.errors), "warnings": dict(self.warnings)}


class _Rules:
    """Small helper that accumulates findings for one stage."""

    def __init__(self, data: Dict[str, Any]):
        self.data = data
        self.result = ValidationResult()

    def error(self, field_name: str, message: str):
        self.result.errors.setdefault(field_name, message)

    def warn(self, field_name: str, message: str):
        self.result.warnings.setdefault(field_name, message)

    def present(self, field_name: str) -> bool:
        return has_value(self.data.get(field_name))

    def require(self, field_name: str, message: str) -> bool:
        if not self.present(field_name):
            self.error(field_name, message)
            return False
        return True

    def number(
        self,
        field_name: str,
        label: str,
        minimum: Optional[float] = None,
        maximum: Optional[float] = None,
        integer: bool = False,
        required: bool = True,
    ):
        if not self.present(field_name):
            if required:
                self.error(field_name, f"{label} is required")
            return None
        ok, number = parse_number(self.data[field_name], integer=integer)
        if not ok:
            kind = "a whole number" if integer else "a number"
            self.error(field_name, f"{label} must be {kind}")
            return None
        if minimum is not None and number < minimum:
            self.error(field_name, f"{label} must be at least {minimum:g}")
        elif maximum is not None and number > maximum:
            self.error(field_name, f"{label} must be at most {maximum:g}")
        return number


def _validate_villa_information(r: _Rules):
    r.require("villa_name", "Villa name is required")
    r.require("villa_address", "Villa address is required")
    r.require("villa_city", "City is required")
    r.number("bedrooms", "Number of bedrooms", minimum=1, maximum=20, integer=True)
    r.number("bathrooms", "Number of bathrooms", minimum=1, maximum=20, integer=True)
    r.number("max_guests", "Maximum guests", minimum=1, maximum=50, integer=True)
    r.require("property_type", "Property type is required")

    r.number("latitude", "Latitude", minimum=-90, maximum=90, required=False)
    r.number("longitude", "Longitude", minimum=-180, maximum=180, required=False)

    if not r.present("description"):
        r.warn("description", "Description is recommended for better listing visibility")
    if not (r.present("latitude") and r.present("longitude")):
        r.warn("latitude", "GPS coordinates help with map display")


def _validate_owner_details(r: _Rules):
    r.require("owner_first_name", "First name is required")
    r.require("owner_last_name", "Last name is required")
    if r.require("owner_email", "Email is required") and not validate_email(r.data["owner_email"]):
        r.error("owner_email", "Please enter a valid email address")
    if r.require("owner_phone", "Phone number is required") and not validate_phone(r.data["owner_phone"]):
        r.error("owner_phone", "Please enter a valid phone number")
    r.require("owner_address", "Owner address is required")

    if not r.present("passport_number") and not r.present("id_number"):
        r.warn("passport_number", "ID document recommended for verification")


def _validate_contractual_details(r: _Rules):
    start = end = None
    if r.require("contract_start_date", "Contract start date is required"):
        start = parse_date(r.data["contract_start_date"])
        if start is None:
            r.error("contract_start_date", "Contract start date must be a valid date (YYYY-MM-DD)")
    if r.require("contract_end_date", "Contract end date is required"):
        end = parse_date(r.data["contract_end_date"])
        if end is None:
            r.error("contract_end_date", "Contract end date must be a valid date (YYYY-MM-DD)")
    if start and end and end <= start:
        r.error("contract_end_date", "Contract end date must be after the start date")

    r.require("contract_type", "Contract type is required")

    rate = r.number("commission_rate", "Commission rate", minimum=0, maximum=100)
    if rate is not None and rate > 50:
        r.warn("commission_rate", "Commission rate above 50% is unusually high")


def _validate_bank_details(r: _Rules):
    r.require("account_holder_name", "Account holder name is required")
    r.require("bank_name", "Bank name is required")
    if not r.present("account_number") and not r.present("iban"):
        r.error("account_number", "Account number or IBAN is required")
    if r.present("iban") and not validate_iban(r.data["iban"]):
        r.error("iban", "Please enter a valid IBAN")

    if not r.present("swift_code"):
        r.warn("swift_code", "SWIFT code recommended for international transfers")


def _validate_ota_credentials(r: _Rules):
    platforms = r.data.get("platforms")
    if not has_value(platforms):
        return
    if not isinstance(platforms, list):
        r.error("platforms", "Platform credentials must be a list")
        return
    for index, platform in enumerate(platforms, start=1):
        if not isinstance(platform, dict) or not has_value(platform.get("platform")):
            r.error("platforms", f"Platform {index}: Platform name is required")
            break
        if not has_value(platform.get("property_id")) and not has_value(platform.get("api_key")):
            r.warn("platforms", f"Platform {index}: Property ID or API key recommended for integration")


def _validate_documents(r: _Rules):
    r.require("property_contract", "Property contract document is required")
    r.require("insurance_certificate", "Insurance certificate document is required")
    if not r.present("utility_bills"):
        r.warn("utility_bills", "Recent utility bills help verify the property address")


def _validate_staff(r: _Rules):
    staff = r.data.get("staff_members")
    if not has_value(staff):
        r.warn("staff_members", "At least one staff member recommended")
        return
    if not isinstance(staff, list):
        r.error("staff_members", "Staff members must be a list")
        return
    for index, member in enumerate(staff, start=1):
        member = member if isinstance(member, dict) else {}
        for key, label in (
            ("first_name", "First name"),
            ("last_name", "Last name"),
            ("position", "Position"),
            ("phone", "Phone number"),
        ):
            if not has_value(member.get(key)):
                r.error("staff_members", f"Staff {index}: {label} is required")
                return


def _validate_facilities(r: _Rules):
    for field_name, label in (
        ("kitchen_equipment", "Kitchen equipment"),
        ("bathroom_amenities", "Bathroom amenities"),
        ("safety_security", "Safety & security facilities"),
    ):
        if not r.present(field_name):
            r.warn(field_name, f"{label} are recommended")


def _validate_photos(r: _Rules):
    r.require("main_photo", "Main photo is required")
    count = 1 if r.present("main_photo") else 0
    for field_name in ("exterior_photos", "interior_photos", "amenity_photos"):
        photos = r.data.get(field_name)
        if isinstance(photos, list):
            count += len(photos)
    if count < 10:
        r.warn("exterior_photos", "At least 10 photos recommended for better listing")


def _validate_review(r: _Rules):
    if r.data.get("final_review") is not True:
        r.error("final_review", "Please confirm you have reviewed all information")
    if r.data.get("terms_accepted") is not True:
        r.error("terms_accepted", "Terms and conditions must be accepted")


_STAGE_RULES: Dict[int, Callable[[_Rules], None]] = {
    1: _validate_villa_information,
    2: _validate_owner_details,
    3: _validate_contractual_details,
    4: _validate_bank_details,
    5: _validate_ota_credentials,
    6: _validate_documents,
    7: _validate_staff,
    8: _validate_facilities,
    9: _validate_photos,
    10: _validate_review,
}


class ValidationService:
    """Stateless stage validator."""

    @staticmethod
    def validate(stage_number: int, data: Optional[Dict[str, Any]]) -> ValidationResult:
        """Validate one stage's data.

        Args:
            stage_number: Catalog stage number (raises InvalidStage if unknown).
            data: Field values keyed by field name. Strings, numbers and
                JSON-like values are all accepted.

        Returns:
            ValidationResult with field-keyed errors and warnings.
        """
        get_stage(stage_number)
        rules = _Rules(dict(data or {}))
        _STAGE_RULES[stage_number](rules)
        return rules.result
