"""ARGUS — Bulk Ad Duplication.

Copies an existing ad into one or more ad sets (1-6 copies each), optionally
applying creative variations. Every copy that fails is also recorded with the
failure tracker so it can be retried later.
"""

import asyncio
import copy
from typing import Any, Dict, Optional

from argus.connectors.gateway import EntityGateway
from argus.core.logging import get_logger
from argus.jobs.progress import ProgressCallback
from argus.models.failure_models import AdCreationPayload, EntityType, FailureContext
from argus.models.job_models import AdDuplicationRequest, AdVariation
from argus.tracker.failure_tracker import FailureTracker

logger = get_logger("jobs.duplication")

ORIGINAL_AD_FIELDS = (
    "id,name,creative{id,object_story_spec,object_story_id,effective_object_story_id},"
    "tracking_specs"
)
STRATEGY_TYPE = "ad_duplication"


def pick_variation(
    request: AdDuplicationRequest, copy_number: int
) -> Optional[AdVariation]:
    """Variations cycle over the copies; a sticky one repeats for the rest."""
    if not request.variations:
        return None
    variation = request.variations[(copy_number - 1) % len(request.variations)]
    if variation.apply_to_remaining and copy_number > 1:
        return next(v for v in request.variations if v.apply_to_remaining)
    return variation


def _apply_variation(spec: Dict[str, Any], variation: AdVariation) -> Dict[str, Any]:
    if "video_data" in spec:
        data = spec["video_data"]
        if variation.video_id:
            data["video_id"] = variation.video_id
        if variation.primary_text is not None:
            data["message"] = variation.primary_text
        if variation.headline is not None:
            data["title"] = variation.headline
        if variation.description is not None:
            data["link_description"] = variation.description
        cta = data.setdefault("call_to_action", {})
        if variation.website_url is not None:
            cta.setdefault("value", {})["link"] = variation.website_url
        if variation.call_to_action is not None:
            cta["type"] = variation.call_to_action
        if variation.image_hash:
            data["image_hash"] = variation.image_hash
    elif "link_data" in spec:
        data = spec["link_data"]
        if variation.image_hash:
            data["image_hash"] = variation.image_hash
        if variation.primary_text is not None:
            data["message"] = variation.primary_text
        if variation.headline is not None:
            data["name"] = variation.headline
        if variation.description is not None:
            data["description"] = variation.description
        if variation.website_url is not None:
            data["link"] = variation.website_url
        if variation.display_link is not None:
            data["caption"] = variation.display_link
        if variation.call_to_action is not None:
            data.setdefault("call_to_action", {})["type"] = variation.call_to_action
    return spec


def build_ad_params(
    original: Dict[str, Any],
    adset_id: str,
    variation: Optional[AdVariation],
    copy_number: int,
) -> Dict[str, Any]:
    """Ad creation params for one copy of `original`.

    A plain copy reuses the original post (object_story_id) so engagement is
    shared; a variation clones object_story_spec and creates a new post.
    """
    creative_data = original.get("creative") or {}
    base_name = original.get("name") or "Ad"
    is_plain_copy = variation is None or not variation.has_overrides()

    if is_plain_copy and creative_data.get("object_story_id"):
        creative = {"object_story_id": creative_data["object_story_id"]}
        name = f"{base_name} - Copy {copy_number}"
    else:
        if not creative_data.get("object_story_spec"):
            raise ValueError(
                "Original ad does not have object_story_spec. Cannot create variations."
            )
        spec = copy.deepcopy(creative_data["object_story_spec"])
        if not is_plain_copy:
            spec = _apply_variation(spec, variation)

        # Meta rejects image_url alongside image_hash (error 1443051)
        for key in ("video_data", "link_data"):
            data = spec.get(key)
            if data and data.get("image_hash") and data.get("image_url"):
                del data["image_url"]

        creative = {"object_story_spec": spec}
        if variation is not None and variation.variation_number:
            name = f"{base_name} - Variation {variation.variation_number}"
        else:
            name = f"{base_name} - Copy {copy_number}"

    params: Dict[str, Any] = {
        "name": name,
        "adset_id": adset_id,
        "creative": creative,
        "status": "ACTIVE",
    }
    if original.get("tracking_specs"):
        params["tracking_specs"] = original["tracking_specs"]
    return params


async def duplicate_ads(
    gateway: EntityGateway,
    tracker: FailureTracker,
    user_id: str,
    request: AdDuplicationRequest,
    progress: ProgressCallback,
    delay_seconds: float = 0.5,
) -> Dict[str, Any]:
    """Job work for `POST /jobs/ad-duplication`."""
    total = request.total_requested
    progress(current_operation="Fetching original ad data...", total_requested=total)
    original = await gateway.fetch_entity(request.original_ad_id, ORIGINAL_AD_FIELDS)

    created = 0
    failed = 0
    campaign_name = request.campaign_name or f"Campaign {request.campaign_id}"

    for i, selection in enumerate(request.ad_sets, start=1):
        adset_name = selection.adset_name or f"Ad Set {i}"
        progress(
            current_operation=f"Creating ads for {adset_name} ({i}/{len(request.ad_sets)})..."
        )

        for copy_number in range(1, selection.number_of_copies + 1):
            params: Dict[str, Any] = {}
            try:
                params = build_ad_params(
                    original,
                    selection.adset_id,
                    pick_variation(request, copy_number),
                    copy_number,
                )
                ad = await gateway.create_ad(params)
            except Exception as e:
                failed += 1
                logger.warning(
                    f"❌ Failed to create copy {copy_number} in {adset_name}: {e}",
                    extra={"user_id": user_id, "entity_id": selection.adset_id},
                )
                record = tracker.record_failure(
                    FailureContext(
                        user_id=user_id,
                        entity_type=EntityType.AD,
                        campaign_id=request.campaign_id,
                        campaign_name=campaign_name,
                        strategy_type=STRATEGY_TYPE,
                        adset_id=selection.adset_id,
                        adset_name=adset_name,
                        ad_name=params.get("name"),
                        payload=AdCreationPayload(
                            params={k: v for k, v in params.items() if k != "adset_id"}
                        ),
                    ),
                    e,
                )
                progress(
                    error={
                        "adset_id": selection.adset_id,
                        "adset_name": adset_name,
                        "copy_number": copy_number,
                        "error": str(e),
                        "failure_id": record.id if record else None,
                    }
                )
                continue

            created += 1
            progress(
                total_created=created,
                current_operation=f"Created ad {created}/{total}...",
                result={
                    "ad_id": ad.get("id"),
                    "ad_name": params["name"],
                    "adset_id": selection.adset_id,
                    "success": True,
                },
            )
            if delay_seconds and copy_number < selection.number_of_copies:
                await asyncio.sleep(delay_seconds)

    logger.info(
        f"🎯 Ad duplication finished: {created}/{total} created, {failed} failed",
        extra={"user_id": user_id, "entity_id": request.original_ad_id},
    )
    return {"total_requested": total, "total_created": created, "total_failed": failed}
