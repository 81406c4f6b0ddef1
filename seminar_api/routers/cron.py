"""
Cron Router

Manual triggers for scheduled jobs, guarded by CRON_SECRET.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from seminar_api.core.dependencies import require_cron_secret
from seminar_api.tasks import reconciliation

router = APIRouter()


@router.get("/unpaid", dependencies=[Depends(require_cron_secret)])
async def run_unpaid():
    """
    Run the unpaid order job now.

    Expires stale konbini orders and sends unpaid reminders.
    """
    result = await reconciliation.run_unpaid_job()
    if result.status != "COMPLETED":
        return JSONResponse(status_code=500, content={"error": "Job failed"})
    return {"success": True, "result": result.model_dump(mode="json")}
