"""ARGUS — Field Comparison Rules.

Builds the list of fields to compare for each entity type and compares them
the way Meta stores values: budgets in cents with a small tolerance, enum
and text values case/whitespace-insensitive, arrays order-insensitive.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from argus.models.failure_models import FieldMismatch
from argus.models.verification_models import EntityRequest

# Fields Meta accepts updates for after creation
CORRECTABLE_FIELDS: Dict[str, set] = {
    "campaign": {"name", "status", "daily_budget", "lifetime_budget"},
    "adset": {"name", "status", "daily_budget", "lifetime_budget", "bid_amount"},
    "ad": {"name", "status"},
}


@dataclass
class FieldSpec:
    name: str
    expected: Any
    actual: Any
    kind: str = "text"  # "text" | "budget" | "number" | "array"


def parse_budget_to_cents(value: Any) -> Optional[int]:
    """Turn a requested budget into cents.

    Numbers above 1000 are taken to be cents already; smaller numbers and
    strings like "$50.00" are dollars.
    """
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if value > 1000:
            return int(value)
        return round(value * 100)
    try:
        amount = float(str(value).replace("$", "").replace(",", "").strip())
    except ValueError:
        return None
    return round(amount * 100)


def _remote_cents(value: Any) -> Optional[int]:
    """Meta returns budgets as strings of cents."""
    if value in (None, "", "0", 0):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _normalize_text(value: Any) -> str:
    return re.sub(r"\s+", " ", str(value if value is not None else "")).strip().lower()


def compare_field(spec: FieldSpec, budget_tolerance: int = 1) -> Optional[FieldMismatch]:
    """Return a FieldMismatch if the remote value differs, else None."""
    if spec.expected is None:
        return None

    if spec.kind == "array":
        expected = spec.expected if isinstance(spec.expected, list) else [spec.expected]
        actual = spec.actual if isinstance(spec.actual, list) else []
        if sorted(_normalize_text(v) for v in expected) != sorted(
            _normalize_text(v) for v in actual
        ):
            return FieldMismatch(
                field=spec.name, expected=expected, actual=actual, kind="array_mismatch"
            )
        return None

    if spec.kind == "budget":
        actual_cents = _remote_cents(spec.actual)
        if actual_cents is None or abs(actual_cents - spec.expected) > budget_tolerance:
            return FieldMismatch(field=spec.name, expected=spec.expected, actual=actual_cents)
        return None

    if spec.kind == "number":
        try:
            if spec.actual is not None and float(spec.actual) == float(spec.expected):
                return None
        except (TypeError, ValueError):
            pass
        return FieldMismatch(field=spec.name, expected=spec.expected, actual=spec.actual)

    if _normalize_text(spec.expected) != _normalize_text(spec.actual):
        return FieldMismatch(field=spec.name, expected=spec.expected, actual=spec.actual)
    return None


def compare_all(specs: List[FieldSpec], budget_tolerance: int = 1) -> List[FieldMismatch]:
    mismatches = []
    for spec in specs:
        mismatch = compare_field(spec, budget_tolerance)
        if mismatch:
            mismatches.append(mismatch)
    return mismatches


# ── Per-entity field lists ──


def _budget_specs(request: EntityRequest, actual: Dict[str, Any], at_campaign: bool) -> List[FieldSpec]:
    """Budgets are compared only on the level that carries them."""
    if (request.budget_level == "campaign") != at_campaign:
        return []
    if request.budget_type == "lifetime":
        return [
            FieldSpec(
                "lifetime_budget",
                parse_budget_to_cents(request.lifetime_budget),
                actual.get("lifetime_budget"),
                "budget",
            )
        ]
    return [
        FieldSpec(
            "daily_budget",
            parse_budget_to_cents(request.daily_budget),
            actual.get("daily_budget"),
            "budget",
        )
    ]


def campaign_fields(request: EntityRequest, actual: Dict[str, Any]) -> List[FieldSpec]:
    return [
        FieldSpec("name", request.campaign_name or request.name, actual.get("name")),
        FieldSpec("objective", request.objective, actual.get("objective")),
        FieldSpec("status", request.status or "PAUSED", actual.get("status")),
        *_budget_specs(request, actual, at_campaign=True),
        FieldSpec("bid_strategy", request.bid_strategy, actual.get("bid_strategy")),
        FieldSpec(
            "special_ad_categories",
            request.special_ad_categories,
            actual.get("special_ad_categories"),
            "array",
        ),
    ]


def adset_fields(request: EntityRequest, actual: Dict[str, Any]) -> List[FieldSpec]:
    specs = [
        FieldSpec("name", request.adset_name or request.name, actual.get("name")),
        FieldSpec("status", request.status or "ACTIVE", actual.get("status")),
        *_budget_specs(request, actual, at_campaign=False),
        FieldSpec("optimization_goal", request.optimization_goal, actual.get("optimization_goal")),
        FieldSpec("bid_strategy", request.bid_strategy, actual.get("bid_strategy")),
        FieldSpec("billing_event", request.billing_event or "IMPRESSIONS", actual.get("billing_event")),
    ]
    if request.targeting:
        remote_targeting = actual.get("targeting") or {}
        specs.append(
            FieldSpec("targeting.age_min", request.targeting.age_min, remote_targeting.get("age_min"), "number")
        )
        specs.append(
            FieldSpec("targeting.age_max", request.targeting.age_max, remote_targeting.get("age_max"), "number")
        )
    return specs


def ad_fields(request: EntityRequest, actual: Dict[str, Any]) -> List[FieldSpec]:
    specs = [
        FieldSpec("name", request.ad_name or request.name, actual.get("name")),
        FieldSpec("status", request.status or "ACTIVE", actual.get("status")),
    ]
    remote_creative = actual.get("creative")
    if request.creative and remote_creative:
        link_data = (remote_creative.get("object_story_spec") or {}).get("link_data") or {}
        specs.extend(
            [
                FieldSpec(
                    "creative.primary_text",
                    request.creative.primary_text,
                    remote_creative.get("body") or link_data.get("message"),
                ),
                FieldSpec("creative.headline", request.creative.headline, link_data.get("name")),
                FieldSpec("creative.description", request.creative.description, link_data.get("description")),
                FieldSpec(
                    "creative.call_to_action",
                    request.creative.call_to_action,
                    (link_data.get("call_to_action") or {}).get("type"),
                ),
                FieldSpec("creative.link", request.creative.link, link_data.get("link")),
            ]
        )
    return specs
