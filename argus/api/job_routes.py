"""ARGUS — Background Job Routes."""

from fastapi import APIRouter, Depends

from argus.api.deps import (
    GatewayFactory,
    get_access_token,
    get_gateway_factory,
    get_job_store,
    get_tracker,
    get_user_id,
)
from argus.core.logging import get_logger
from argus.jobs.duplication import duplicate_ads
from argus.jobs.progress import JobProgressStore, ProgressCallback
from argus.models.job_models import AdDuplicationRequest
from argus.tracker.failure_tracker import FailureTracker

logger = get_logger("api.jobs")

router = APIRouter(prefix="/jobs", tags=["Jobs"])


@router.post("/ad-duplication")
async def start_ad_duplication(
    body: AdDuplicationRequest,
    user_id: str = Depends(get_user_id),
    token: str = Depends(get_access_token),
    factory: GatewayFactory = Depends(get_gateway_factory),
    tracker: FailureTracker = Depends(get_tracker),
    store: JobProgressStore = Depends(get_job_store),
):
    """Start bulk ad duplication; poll `GET /jobs/{job_id}` for progress."""

    async def work(progress: ProgressCallback):
        # The job outlives the request, so it owns its own gateway
        gateway = factory(token)
        try:
            return await duplicate_ads(gateway, tracker, user_id, body, progress)
        finally:
            await gateway.close()

    job_id = store.submit(
        user_id,
        work,
        kind="ad_duplication",
        total_requested=body.total_requested,
        label=f"Duplicate ad {body.original_ad_id}",
    )
    return {
        "success": True,
        "job_id": job_id,
        "total_requested": body.total_requested,
        "message": "Ad duplication started. Use the job_id to track progress.",
    }


@router.get("")
def list_jobs(
    user_id: str = Depends(get_user_id),
    store: JobProgressStore = Depends(get_job_store),
):
    jobs = store.list_jobs(user_id)
    return {"success": True, "jobs": [j.model_dump(mode="json") for j in jobs]}


@router.get("/{job_id}")
def get_job(
    job_id: str,
    user_id: str = Depends(get_user_id),
    store: JobProgressStore = Depends(get_job_store),
):
    return {"success": True, "job": store.get_progress(job_id, user_id).model_dump(mode="json")}


@router.delete("/{job_id}")
def delete_job(
    job_id: str,
    user_id: str = Depends(get_user_id),
    store: JobProgressStore = Depends(get_job_store),
):
    store.delete(job_id, user_id)
    return {"success": True, "message": "Job deleted"}
