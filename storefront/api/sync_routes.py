"""
IAP sync routes - Manual trigger for the catalog sync job.

Runs the same job as the scheduler and returns its result synchronously.
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from structlog import get_logger

from storefront.api.admin_dependencies import require_admin_role
from storefront.api.dependencies import get_sync_job
from storefront.models.api import SyncTriggerResponse
from storefront.models.domain import AdminUser
from storefront.services.iap_sync import IapSyncJob

logger = get_logger(__name__)
router = APIRouter(prefix="/v1/iap", tags=["iap-sync"])


@router.get(
    "/sync",
    response_model=SyncTriggerResponse,
    responses={500: {"description": "Sync failed: {success: false, error}"}},
)
async def trigger_sync(
    job: IapSyncJob = Depends(get_sync_job),
    admin: AdminUser = Depends(require_admin_role),
) -> SyncTriggerResponse | JSONResponse:
    """
    Run one catalog sync now.

    Accessible by: admin only
    """
    logger.info("manual_iap_sync_requested", admin_email=admin.email)
    result = await job.run(trigger="manual")

    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=result.to_response(),
        )

    return SyncTriggerResponse(
        success=True,
        message=f"Synced {result.total} products",
        total=result.total,
        created=result.created,
        updated=result.updated,
        failed=result.failed,
    )
