from __future__ import annotations

import re
from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from microloan.schemas.common import Gender, MaritalStatus

_PHONE_RE = re.compile(r"^\d{9}$")


class DocumentType(str, Enum):
    DNI = "DNI"
    CE = "CE"
    PASAPORTE = "PASAPORTE"
    RUC = "RUC"


def _validate_document(document_type: DocumentType, document_number: str) -> None:
    if document_type == DocumentType.DNI and not re.fullmatch(r"\d{8}", document_number):
        raise ValueError("DNI must have exactly 8 digits")
    if document_type == DocumentType.CE and not re.fullmatch(r"\d{9}", document_number):
        raise ValueError("CE must have exactly 9 digits")
    if document_type == DocumentType.PASAPORTE and not 6 <= len(document_number) <= 12:
        raise ValueError("Passport number must have between 6 and 12 characters")


class ClientBase(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    first_name: str = Field(min_length=2, max_length=100)
    last_name: str = Field(min_length=2, max_length=100)
    email: EmailStr | None = None
    phone: str | None = None
    address: str | None = Field(default=None, max_length=255)
    city: str | None = Field(default=None, max_length=100)
    state: str | None = Field(default=None, max_length=100)
    document_type: DocumentType
    document_number: str = Field(min_length=1, max_length=20)
    birth_date: date | None = None
    gender: Gender | None = None
    marital_status: MaritalStatus | None = None
    occupation: str | None = Field(default=None, max_length=100)

    @field_validator("email", "phone", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("phone")
    @classmethod
    def _validate_phone(cls, value: str | None) -> str | None:
        if value is not None and not _PHONE_RE.match(value):
            raise ValueError("Phone must have exactly 9 digits")
        return value

    @model_validator(mode="after")
    def _validate_document_number(self):
        _validate_document(DocumentType(self.document_type), self.document_number)
        return self


class ClientCreate(ClientBase):
    pass


class ClientUpdate(ClientBase):
    pass


class ClientDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    first_name: str
    last_name: str
    full_name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    document_type: str
    document_number: str
    birth_date: date | None = None
    gender: str | None = None
    marital_status: str | None = None
    occupation: str | None = None
    created_at: datetime | None = None
