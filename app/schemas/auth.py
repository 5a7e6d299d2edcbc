"""Authentication and voter registration schemas."""

import re
from datetime import date
from typing import Literal

from pydantic import BaseModel, EmailStr, Field, field_validator

PHONE_PATTERN = r"^[6-9]\d{9}$"
NATIONAL_ID_PATTERN = r"^\d{4}\s\d{4}\s\d{4}$"
PINCODE_PATTERN = r"^\d{6}$"


class Address(BaseModel):
    """Postal address of a voter."""

    street: str = Field(..., min_length=1, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    district: str | None = Field(default=None, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    pincode: str = Field(..., pattern=PINCODE_PATTERN)


class VoterRegister(BaseModel):
    """Request body for voter self-registration."""

    full_name: str = Field(..., min_length=2, max_length=100)
    date_of_birth: date
    gender: Literal["male", "female", "other"]
    email: EmailStr
    phone_number: str = Field(..., pattern=PHONE_PATTERN)
    national_id: str = Field(..., pattern=NATIONAL_ID_PATTERN)
    address: Address
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator("full_name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 2:
            raise ValueError("Full name must be between 2 and 100 characters")
        return value

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        if not (
            re.search(r"[a-z]", value) and re.search(r"[A-Z]", value) and re.search(r"\d", value)
        ):
            raise ValueError(
                "Password must contain at least one lowercase letter, "
                "one uppercase letter, and one number"
            )
        return value


class VoterLogin(BaseModel):
    """Voter login by email address or phone number."""

    identifier: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class AdminLogin(BaseModel):
    """Administrator login."""

    email: EmailStr
    password: str = Field(..., min_length=1)
