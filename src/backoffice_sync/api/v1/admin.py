"""Administrative endpoints: bulk product sync and the sync log."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse, PlainTextResponse
from pydantic import BaseModel

from backoffice_sync.api.deps import SyncLogDep, get_sync_dispatcher, require_api_key
from backoffice_sync.exceptions import ConfigMissing
from backoffice_sync.services import SyncDispatcher

router = APIRouter(dependencies=[Depends(require_api_key)])


class BulkSyncResponse(BaseModel):
    success: bool
    message: str
    total: int
    success_count: int
    error_count: int


@router.post("/sync/products", response_model=BulkSyncResponse)
async def sync_all_products(
    dispatcher: Annotated[SyncDispatcher, Depends(get_sync_dispatcher)],
) -> BulkSyncResponse:
    """
    Push every published product to the back office.

    Runs synchronously and only returns once each product was attempted,
    so a large catalog keeps the request open for a while.
    """
    try:
        summary = await dispatcher.sync_all_products()
    except ConfigMissing as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return BulkSyncResponse(
        success=True,
        message=summary.message,
        total=summary.total,
        success_count=summary.success_count,
        error_count=summary.error_count,
    )


@router.get("/logs", response_class=PlainTextResponse)
def read_log(sync_log: SyncLogDep) -> str:
    return sync_log.read()


@router.delete("/logs")
def clear_log(sync_log: SyncLogDep) -> dict[str, bool]:
    sync_log.clear()
    return {"cleared": True}


@router.get("/logs/download")
def download_log(sync_log: SyncLogDep) -> FileResponse:
    sync_log.ensure_exists()
    return FileResponse(
        sync_log.path,
        media_type="text/plain",
        filename=sync_log.path.name,
    )
