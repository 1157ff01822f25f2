import logging
from datetime import date, datetime
from typing import NamedTuple, Optional

from modules.contracts.exceptions import ValidationError
from modules.contracts.models.field_values import (
    CheckboxFieldValue,
    DateFieldValue,
    InitialFieldValue,
    SignatureFieldValue,
    SignatureMetadata,
    TextFieldValue,
    is_empty,
)
from modules.contracts.models.signature_field import FieldType

logger = logging.getLogger(__name__)

_VALUE_CLASSES = (SignatureFieldValue, InitialFieldValue, DateFieldValue, TextFieldValue,
                  CheckboxFieldValue)


class FieldSpec(NamedTuple):
    """Detached snapshot of a SignatureField, safe to hand to worker threads."""
    id: str
    type: FieldType
    label: str
    width: Optional[int]
    height: Optional[int]

    @classmethod
    def of(cls, field) -> "FieldSpec":
        return cls(field.id, field.type, field.label, field.width, field.height)


class SigningContext(NamedTuple):
    contract_id: str
    event_id: str
    signer_role: str
    signer_name: Optional[str]
    metadata: Optional[SignatureMetadata]
    signed_at: datetime


def raw_is_empty(raw) -> bool:
    if raw is None:
        return True
    if isinstance(raw, _VALUE_CLASSES):
        return is_empty(raw)
    if isinstance(raw, bool):
        return not raw
    if isinstance(raw, str):
        return not raw.strip()
    if isinstance(raw, (list, tuple)):
        return not any(stroke for stroke in raw)
    return False


def _invalid(spec: FieldSpec, reason: str) -> ValidationError:
    return ValidationError(f"Field '{spec.label}' {reason}", errors={spec.id: reason})


class FieldInputBuilder:
    """Turns a submitted raw value into the typed value stored on a field."""

    def __init__(self, asset_store):
        self.asset_store = asset_store

    def build(self, spec: FieldSpec, raw, ctx: SigningContext):
        """
        Typed value for a submitted input. Images are always captured and
        uploaded here; prebuilt values are never taken from a request.
        """
        if isinstance(raw, (dict,) + _VALUE_CLASSES):
            raise _invalid(spec, "must be a plain value, stroke path or image data URL")

        if spec.type in (FieldType.SIGNATURE, FieldType.INITIAL):
            asset = self.asset_store.capture_and_upload(
                raw, spec.type, ctx.contract_id, ctx.event_id, spec.id, ctx.signer_role,
                signer_name=ctx.signer_name, width=spec.width, height=spec.height,
                signed_at=ctx.signed_at,
            )
            cls = SignatureFieldValue if spec.type == FieldType.SIGNATURE else InitialFieldValue
            return cls(asset=asset, metadata=ctx.metadata)

        return self.parse_plain(spec, raw, ctx.metadata)

    @staticmethod
    def from_draft(spec: FieldSpec, draft, ctx: SigningContext):
        """Promote a field's own stored draft, restamped with the signing metadata."""
        if draft.type != spec.type.value:
            raise _invalid(spec, f"expects a {spec.type.value} value")
        return draft.model_copy(update={"metadata": ctx.metadata})

    @staticmethod
    def parse_plain(spec: FieldSpec, raw, metadata=None):
        """Typed value for a date, text or checkbox field. No I/O."""
        if spec.type == FieldType.DATE:
            if isinstance(raw, datetime):
                raw = raw.date()
            if isinstance(raw, date):
                return DateFieldValue(date=raw.isoformat(), metadata=metadata)
            if not isinstance(raw, str):
                raise _invalid(spec, "must be an ISO date (YYYY-MM-DD)")
            try:
                parsed = date.fromisoformat(raw.strip())
            except ValueError:
                raise _invalid(spec, "must be an ISO date (YYYY-MM-DD)")
            return DateFieldValue(date=parsed.isoformat(), metadata=metadata)

        if spec.type == FieldType.TEXT:
            if not isinstance(raw, str):
                raise _invalid(spec, "must be text")
            return TextFieldValue(text=raw.strip(), metadata=metadata)

        if spec.type == FieldType.CHECKBOX:
            if not isinstance(raw, bool):
                raise _invalid(spec, "must be true or false")
            return CheckboxFieldValue(checked=raw, metadata=metadata)

        raise _invalid(spec, f"cannot take a plain value ({spec.type.value})")
