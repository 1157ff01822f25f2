import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from modules.contracts.clock import utcnow
from modules.contracts.exceptions import ConflictError, ContractNotFoundError
from modules.contracts.models.contract import Contract, ContractStatus

logger = logging.getLogger(__name__)


class ContractRepository:
    def __init__(self, db_session: Session):
        self.db = db_session

    def find(self, contract_id: str) -> Optional[Contract]:
        return self.db.get(Contract, contract_id)

    def get(self, contract_id: str) -> Contract:
        contract = self.find(contract_id)
        if not contract:
            raise ContractNotFoundError(f"Contract {contract_id} not found")
        return contract

    def list(self, event_id: Optional[str] = None, vendor_id: Optional[str] = None,
             include_superseded: bool = True) -> List[Contract]:
        query = self.db.query(Contract)
        if event_id:
            query = query.filter(Contract.event_id == event_id)
        if vendor_id:
            query = query.filter(Contract.vendor_id == vendor_id)
        if not include_superseded:
            query = query.filter(Contract.status == ContractStatus.ACTIVE)
        return query.order_by(Contract.created_at.desc()).all()

    def add(self, contract: Contract) -> Contract:
        self.db.add(contract)
        self.db.commit()
        self.db.refresh(contract)
        return contract

    def attach(self, contract: Contract) -> None:
        """Stage a new contract to be committed with the next save."""
        self.db.add(contract)

    def refresh(self, contract: Contract) -> Contract:
        self.db.refresh(contract)
        return contract

    def current_version(self, contract_id: str) -> Optional[int]:
        with self.db.no_autoflush:
            return self.db.execute(
                select(Contract.version).where(Contract.id == contract_id)
            ).scalar_one_or_none()

    def save(self, contract: Contract, expected_version: int) -> Contract:
        """
        Commit every pending change on `contract` if nobody else wrote it since
        `expected_version` was read. Stale writes raise ConflictError and
        leave the stored contract untouched.
        """
        try:
            actual = self.current_version(contract.id)
            if actual != expected_version:
                raise ConflictError(contract.id, expected_version, actual)
            contract.touch(utcnow())
            self.db.commit()
        except ConflictError:
            self.db.rollback()
            raise
        except StaleDataError as e:
            self.db.rollback()
            raise ConflictError(contract.id, expected_version, None) from e
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(contract)
        logger.debug(f"Saved contract {contract.id} at version {contract.version}")
        return contract

    def delete(self, contract: Contract) -> None:
        self.db.delete(contract)
        self.db.commit()
