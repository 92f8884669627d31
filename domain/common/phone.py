"""Structured phone number value object (country / area / subscriber)."""
from __future__ import annotations

import re
from dataclasses import dataclass

from domain.common.exceptions import DomainValidationException


DEFAULT_COUNTRY_CODE = "55"

_ALLOWED = re.compile(r"^\+?[\d\s\-().]+$")


@dataclass(frozen=True)
class PhoneNumber:
    country_code: str
    area_code: str
    number: str

    @classmethod
    def parse(cls, raw: str) -> "PhoneNumber":
        """Parse ``+55 (22) 99789-3098`` style input.

        12-13 digits must start with the country code; 10-11 digits are read
        as a national number. Anything else is rejected.
        """
        if not raw or not _ALLOWED.match(raw.strip()):
            raise DomainValidationException("Invalid phone number", field="phone")
        digits = re.sub(r"\D", "", raw)

        if len(digits) in (12, 13):
            if not digits.startswith(DEFAULT_COUNTRY_CODE):
                raise DomainValidationException(
                    "Unsupported phone country code", field="phone", details={"digits": len(digits)}
                )
            country, rest = digits[:2], digits[2:]
        elif len(digits) in (10, 11):
            country, rest = DEFAULT_COUNTRY_CODE, digits
        else:
            raise DomainValidationException(
                "Phone number must have 10 to 13 digits", field="phone", details={"digits": len(digits)}
            )

        area, number = rest[:2], rest[2:]
        if area.startswith("0"):
            raise DomainValidationException("Invalid area code", field="phone")
        return cls(country_code=country, area_code=area, number=number)

    @property
    def e164(self) -> str:
        return f"+{self.country_code}{self.area_code}{self.number}"

    def __str__(self) -> str:
        return self.e164
