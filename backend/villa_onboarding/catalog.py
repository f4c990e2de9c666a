"""
Stage Catalog — The fixed, ordered onboarding sequence.

Every other component reads stage numbers, field names, required flags and
weights from here. Nothing in this module is mutable at runtime.
"""
from dataclasses import dataclass
from typing import Dict, Tuple

from villa_onboarding.errors import InvalidField, InvalidStage


@dataclass(frozen=True)
class FieldDefinition:
    name: str
    label: str
    field_type: str = "text"   # text | integer | number | email | tel | date | boolean | json | document
    required: bool = False


@dataclass(frozen=True)
class StageDefinition:
    number: int
    key: str
    name: str
    weight: int
    required: bool
    estimated_minutes: int
    fields: Tuple[FieldDefinition, ...]

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    @property
    def required_field_names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields if f.required)

    def get_field(self, field_name: str) -> FieldDefinition:
        for f in self.fields:
            if f.name == field_name:
                return f
        raise InvalidField(self.number, field_name)


F = FieldDefinition

STAGES: Tuple[StageDefinition, ...] = (
    StageDefinition(1, "villa_info", "Villa Information", weight=15, required=True, estimated_minutes=10, fields=(
        F("villa_name", "Villa Name", required=True),
        F("villa_address", "Villa Address", required=True),
        F("villa_city", "City", required=True),
        F("bedrooms", "Number of Bedrooms", "integer", required=True),
        F("bathrooms", "Number of Bathrooms", "integer", required=True),
        F("max_guests", "Maximum Guests", "integer", required=True),
        F("property_type", "Property Type", required=True),
        F("description", "Description"),
        F("latitude", "Latitude", "number"),
        F("longitude", "Longitude", "number"),
    )),
    StageDefinition(2, "owner_details", "Owner Details", weight=12, required=True, estimated_minutes=8, fields=(
        F("owner_first_name", "Owner First Name", required=True),
        F("owner_last_name", "Owner Last Name", required=True),
        F("owner_email", "Owner Email Address", "email", required=True),
        F("owner_phone", "Owner Phone", "tel", required=True),
        F("owner_address", "Owner Address", required=True),
        F("owner_nationality", "Nationality"),
        F("passport_number", "Passport Number"),
        F("id_number", "ID Number"),
    )),
    StageDefinition(3, "contractual_details", "Contractual Details", weight=10, required=True, estimated_minutes=12, fields=(
        F("contract_start_date", "Contract Start Date", "date", required=True),
        F("contract_end_date", "Contract End Date", "date", required=True),
        F("contract_type", "Contract Type", required=True),
        F("commission_rate", "Commission Rate (%)", "number", required=True),
    )),
    StageDefinition(4, "bank_details", "Bank Details", weight=8, required=True, estimated_minutes=15, fields=(
        F("account_holder_name", "Account Holder Name", required=True),
        F("bank_name", "Bank Name", required=True),
        F("account_number", "Account Number"),
        F("iban", "IBAN"),
        F("swift_code", "SWIFT Code"),
    )),
    StageDefinition(5, "ota_credentials", "OTA Credentials", weight=8, required=False, estimated_minutes=20, fields=(
        F("booking_com_listed", "Listed on Booking.com", "boolean"),
        F("airbnb_listed", "Listed on Airbnb", "boolean"),
        F("tripadvisor_listed", "Listed on Tripadvisor", "boolean"),
        F("platforms", "Platform Credentials", "json"),
    )),
    StageDefinition(6, "documents", "Documents", weight=12, required=True, estimated_minutes=25, fields=(
        F("property_contract", "Property Contract", "document", required=True),
        F("insurance_certificate", "Insurance Certificate", "document", required=True),
        F("utility_bills", "Utility Bills", "document"),
    )),
    StageDefinition(7, "staff_config", "Staff", weight=10, required=False, estimated_minutes=15, fields=(
        F("staff_members", "Staff Members", "json"),
        F("positions", "Positions", "json"),
        F("salaries", "Salaries", "json"),
    )),
    StageDefinition(8, "facilities", "Facilities", weight=10, required=False, estimated_minutes=10, fields=(
        F("kitchen_equipment", "Kitchen Equipment", "json"),
        F("bathroom_amenities", "Bathroom Amenities", "json"),
        F("outdoor_facilities", "Outdoor Facilities", "json"),
        F("safety_security", "Safety & Security", "json"),
    )),
    StageDefinition(9, "photos", "Photos", weight=8, required=True, estimated_minutes=30, fields=(
        F("main_photo", "Main Photo", "document", required=True),
        F("exterior_photos", "Exterior Photos", "json"),
        F("interior_photos", "Interior Photos", "json"),
        F("amenity_photos", "Amenity Photos", "json"),
    )),
    StageDefinition(10, "review", "Review & Submit", weight=7, required=True, estimated_minutes=5, fields=(
        F("final_review", "Final Review Confirmed", "boolean", required=True),
        F("terms_accepted", "Terms Accepted", "boolean", required=True),
    )),
)

del F

_BY_NUMBER: Dict[int, StageDefinition] = {s.number: s for s in STAGES}

TOTAL_STEPS = len(STAGES)

if sum(s.weight for s in STAGES) != 100:
    raise RuntimeError("Stage weights must sum to 100")
if sorted(_BY_NUMBER) != list(range(1, TOTAL_STEPS + 1)):
    raise RuntimeError("Stage numbers must cover 1..N without gaps")


def stage_numbers() -> Tuple[int, ...]:
    return tuple(_BY_NUMBER)


def get_stage(stage_number) -> StageDefinition:
    """Look up a stage by number, rejecting anything outside 1..N."""
    if isinstance(stage_number, bool) or not isinstance(stage_number, int):
        raise InvalidStage(stage_number, TOTAL_STEPS)
    stage = _BY_NUMBER.get(stage_number)
    if stage is None:
        raise InvalidStage(stage_number, TOTAL_STEPS)
    return stage


def get_field(stage_number, field_name) -> FieldDefinition:
    return get_stage(stage_number).get_field(field_name)


def total_fields() -> int:
    return sum(len(s.fields) for s in STAGES)


def total_weight() -> int:
    return sum(s.weight for s in STAGES)
