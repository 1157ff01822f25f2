"""
Typed values for signature fields.

A field's ``value`` / ``draft_value`` is one variant of a union keyed by the
field ``type``; the variants are persisted as JSON through ``FieldValueType``.
"""
from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from sqlalchemy import JSON
from sqlalchemy.types import TypeDecorator


class SignatureAsset(BaseModel):
    """A persisted signature/initial image. Immutable after creation."""
    model_config = ConfigDict(frozen=True)

    url: str
    storage_key: str
    raw_capture: Optional[str] = None  # data URL kept for re-rendering
    signer_name: Optional[str] = None
    signed_at: datetime
    field_id: str
    signer_role: str
    storage_method: str = "local"


class VendorSignature(SignatureAsset):
    vendor_name: str
    vendor_email: str


class SignatureMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    signer_id: Optional[str] = None
    signer_role: str
    contract_id: str
    event_id: str
    signed_at: datetime
    user_agent: Optional[str] = None


class _FieldValueBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    metadata: Optional[SignatureMetadata] = None


class SignatureFieldValue(_FieldValueBase):
    type: Literal["signature"] = "signature"
    asset: SignatureAsset


class InitialFieldValue(_FieldValueBase):
    type: Literal["initial"] = "initial"
    asset: SignatureAsset


class DateFieldValue(_FieldValueBase):
    type: Literal["date"] = "date"
    date: str


class TextFieldValue(_FieldValueBase):
    type: Literal["text"] = "text"
    text: str


class CheckboxFieldValue(_FieldValueBase):
    type: Literal["checkbox"] = "checkbox"
    checked: bool


FieldValue = Annotated[
    Union[
        SignatureFieldValue,
        InitialFieldValue,
        DateFieldValue,
        TextFieldValue,
        CheckboxFieldValue,
    ],
    Field(discriminator="type"),
]

field_value_adapter = TypeAdapter(FieldValue)


def is_empty(value) -> bool:
    """True when a value would not satisfy a required field."""
    if value is None:
        return True
    if isinstance(value, (SignatureFieldValue, InitialFieldValue)):
        return not value.asset.url
    if isinstance(value, DateFieldValue):
        return not value.date.strip()
    if isinstance(value, TextFieldValue):
        return not value.text.strip()
    if isinstance(value, CheckboxFieldValue):
        return not value.checked
    return True


def display_value(value) -> str:
    if value is None:
        return ""
    if isinstance(value, (SignatureFieldValue, InitialFieldValue)):
        return value.asset.url
    if isinstance(value, DateFieldValue):
        return value.date
    if isinstance(value, TextFieldValue):
        return value.text
    if isinstance(value, CheckboxFieldValue):
        return "Checked" if value.checked else "Unchecked"
    return str(value)


class FieldValueType(TypeDecorator):
    """JSON column holding one FieldValue variant"""
    impl = JSON
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, dict):
            value = field_value_adapter.validate_python(value)
        return value.model_dump(mode="json")

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return field_value_adapter.validate_python(value)


class VendorSignatureType(TypeDecorator):
    impl = JSON
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, dict):
            value = VendorSignature.model_validate(value)
        return value.model_dump(mode="json")

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return VendorSignature.model_validate(value)
