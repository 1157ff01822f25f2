from .asset_store import SignatureAssetStore
from .certificate_service import CertificateService, certificate_filename
from .cleanup import delete_orphaned_assets
from .draft_service import DraftSaveResult, DraftService
from .finalization_service import FinalizationResult, FinalizationService, SignerContext
from .ip_resolver import IpAddressResolver
from .storage import LocalAssetStorage, S3AssetStorage, get_asset_storage
from .workflow_service import ContractWorkflowService, SigningSession

__all__ = [
    'SignatureAssetStore', 'CertificateService', 'certificate_filename',
    'delete_orphaned_assets', 'DraftSaveResult', 'DraftService', 'FinalizationResult',
    'FinalizationService', 'SignerContext', 'IpAddressResolver', 'LocalAssetStorage',
    'S3AssetStorage', 'get_asset_storage', 'ContractWorkflowService', 'SigningSession'
]
