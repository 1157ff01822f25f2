import logging
from datetime import datetime, timedelta
from typing import Optional, Set

from sqlalchemy.orm import Session

from modules.contracts.clock import utcnow
from modules.contracts.exceptions import StorageError
from modules.contracts.models.contract import Contract
from modules.contracts.models.signature_field import SignatureField

logger = logging.getLogger(__name__)

DEFAULT_MIN_AGE = timedelta(hours=24)


def _asset_key(value) -> Optional[str]:
    asset = getattr(value, "asset", None)
    return asset.storage_key if asset is not None else None


def referenced_keys(session: Session) -> Set[str]:
    """Every storage key a stored contract still points to."""
    keys = set()
    for source_key, vendor_signature in session.query(Contract.storage_key, Contract.vendor_signature):
        if source_key:
            keys.add(source_key)
        if vendor_signature is not None:
            keys.add(vendor_signature.storage_key)
    for value, draft_value in session.query(SignatureField.value, SignatureField.draft_value):
        keys.update(key for key in (_asset_key(value), _asset_key(draft_value)) if key)
    return keys


def delete_orphaned_assets(session: Session, storage, min_age: timedelta = DEFAULT_MIN_AGE,
                           now: Optional[datetime] = None) -> int:
    """
    Remove stored files no contract references: signature images of deleted
    contracts, uploads left by failed finalize attempts, draft images replaced
    by later drafts, and source documents without a contract row.

    Objects younger than `min_age` are kept so an upload whose contract has
    not committed yet is never swept.
    """
    cutoff = (now or utcnow()) - min_age
    referenced = referenced_keys(session)

    orphans = []
    for prefix in ("signatures/", "contracts/"):
        for key, modified in storage.list_objects(prefix):
            if modified <= cutoff and key not in referenced:
                orphans.append(key)

    deleted = 0
    for key in orphans:
        try:
            storage.delete(key)
            deleted += 1
        except StorageError as e:
            logger.warning(f"Error deleting orphaned asset {key}: {e}")

    if deleted:
        logger.info(f"Deleted {deleted} orphaned assets")
    return deleted
