import json
import logging
from typing import Optional

from modules.contracts.clock import utcnow
from modules.contracts.models.audit_entry import AuditEntry

logger = logging.getLogger(__name__)


class AuditTrail:
    """Append-only log of workflow actions, persisted with the contract."""

    @staticmethod
    def append(contract, action: str, actor: str, actor_role: str,
               details=None, ip_address: Optional[str] = None, at=None) -> AuditEntry:
        if isinstance(details, dict):
            details = json.dumps(details, default=str, sort_keys=True)
        sequence = max((e.sequence for e in contract.audit_trail), default=0) + 1
        entry = AuditEntry(
            sequence=sequence,
            timestamp=at or utcnow(),
            action=action,
            actor=actor,
            actor_role=actor_role,
            details=details,
            ip_address=ip_address,
        )
        contract.audit_trail.append(entry)
        logger.info(
            "audit",
            extra={"contract_id": contract.id, "action": action, "actor": actor, "sequence": sequence},
        )
        return entry
