# feature_flags.py
from __future__ import annotations

import hashlib
import logging

from jobcrm.config import settings


logger = logging.getLogger(__name__)

V2_ENRICHMENT = "v2-enrichment"
ENRICHMENT_AUDIT_UI = "enrichment-audit-ui"


def rollout_bucket(user_id: str) -> int:
    digest = hashlib.md5(user_id.encode("utf-8")).hexdigest()
    return int(digest[:8], 16) % 100


def is_v2_enrichment_enabled(user_id: str | None = None) -> bool:
    flag = (settings.use_v2_enrichment or "").strip().lower()
    if flag == "false":
        return False
    if flag == "true" and settings.v2_rollout_percentage is None:
        return True

    percentage = settings.v2_rollout_percentage or 0
    if percentage >= 100:
        return True
    if percentage <= 0:
        return False
    if user_id:
        return rollout_bucket(user_id) < percentage
    # No caller identity: only enable once the rollout is past half.
    return percentage >= 50


def get_enrichment_endpoint(user_id: str | None = None) -> str:
    enabled = is_v2_enrichment_enabled(user_id)
    log_feature_flag_decision(V2_ENRICHMENT, enabled, user_id)
    prefix = settings.api_prefix.rstrip("/")
    return f"{prefix}/jobs/enrich/v2" if enabled else f"{prefix}/jobs/enrich"


def is_enrichment_audit_ui_enabled() -> bool:
    return bool(settings.enable_enrichment_audit_ui)


def log_feature_flag_decision(feature: str, enabled: bool, user_id: str | None = None, **metadata) -> None:
    logger.debug(
        "feature_flag feature=%s enabled=%s user_id=%s rollout=%s %s",
        feature,
        enabled,
        user_id,
        settings.v2_rollout_percentage,
        metadata or "",
    )
