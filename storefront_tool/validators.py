"""Address field validation, run before anything is sent to the backend."""
import re
from typing import Any

from .gateway.schema import Address

_NAME_RE = re.compile(r"^[a-zA-Z\s.'-]{2,}$")
_PINCODE_RE = re.compile(r"^\d{6}$")
_POSTAL_RE = re.compile(r"^[a-zA-Z0-9\-\s]{3,10}$")
_COUNTRY_RE = re.compile(r"^[a-z]{2}$")
_PHONE_RE = re.compile(r"^\d{6,14}$")


def normalize_country_code(value: Any) -> str:
    return str(value or "").strip().lower()


def digits_only(value: Any) -> str:
    return re.sub(r"\D+", "", str(value or ""))


def normalize_address(address: Address | dict) -> Address:
    """Coerce user input into an Address with normalized country, postal code and phone."""
    if isinstance(address, dict):
        address = Address.model_validate(address)
    return address.model_copy(update={
        "country_code": normalize_country_code(address.country_code) or None,
        "postal_code": (address.postal_code or "").strip() or None,
        "phone": digits_only(address.phone) or None,
    })


def validate_address(address: Address | dict) -> dict[str, str]:
    """Return field -> message for every invalid field; empty dict means valid."""
    if isinstance(address, dict):
        address = Address.model_validate(address)

    errors: dict[str, str] = {}
    first_name = (address.first_name or "").strip()
    last_name = (address.last_name or "").strip()
    postal = (address.postal_code or "").strip()
    country = normalize_country_code(address.country_code)
    phone = digits_only(address.phone)

    if not first_name:
        errors["first_name"] = "First name is required"
    elif not _NAME_RE.match(first_name):
        errors["first_name"] = "Enter a valid first name"

    if last_name and not _NAME_RE.match(last_name):
        errors["last_name"] = "Enter a valid last name"

    if not (address.address_1 or "").strip():
        errors["address_1"] = "Address is required"
    if not (address.city or "").strip():
        errors["city"] = "City is required"
    if not (address.province or "").strip():
        errors["province"] = "State / Province is required"

    if not postal:
        errors["postal_code"] = "Postal code is required"
    elif country == "in":
        if not _PINCODE_RE.match(postal):
            errors["postal_code"] = "Enter a valid 6-digit pincode"
    elif not _POSTAL_RE.match(postal):
        errors["postal_code"] = "Enter a valid postal code"

    if not country:
        errors["country_code"] = "Country code is required"
    elif not _COUNTRY_RE.match(country):
        errors["country_code"] = "Use 2-letter country code (e.g., IN)"

    if not phone:
        errors["phone"] = "Phone is required"
    elif not _PHONE_RE.match(phone):
        errors["phone"] = "Enter a valid phone number"

    return errors
