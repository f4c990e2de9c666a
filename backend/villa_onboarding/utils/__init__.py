from villa_onboarding.utils.hashing import generate_hash, generate_chain_hash
from villa_onboarding.utils.validators import (
    has_value, parse_number, parse_date, validate_email, validate_phone, validate_iban,
)

__all__ = [
    "generate_hash", "generate_chain_hash",
    "has_value", "parse_number", "parse_date",
    "validate_email", "validate_phone", "validate_iban",
]
