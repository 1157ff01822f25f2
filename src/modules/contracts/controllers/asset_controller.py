from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import RedirectResponse

from modules.contracts.dependencies import get_storage, to_http_error
from modules.contracts.exceptions import ContractError

router = APIRouter()

ASSET_PREFIXES = ("signatures/", "contracts/")


@router.get("/{key:path}", summary="Redirect to a short-lived download URL for a stored asset")
def get_asset(key: str, storage=Depends(get_storage)):
    if not key.startswith(ASSET_PREFIXES) or ".." in key.split("/"):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Asset not found")
    try:
        return RedirectResponse(storage.download_url(key), status_code=status.HTTP_307_TEMPORARY_REDIRECT)
    except ContractError as e:
        raise to_http_error(e)
