"""Campaign tasks.

Provides background processing for:
1. Dispatching a campaign to its pending recipients
2. Enqueuing draft campaigns whose scheduled time has passed
"""

import asyncio
import logging

from revwave_worker.celery_app import app

logger = logging.getLogger(__name__)


@app.task(bind=True, name="campaigns.dispatch")
def dispatch(self, campaign_id: int, tenant_id: str) -> dict:
    """Send a campaign to its pending recipients.

    Not retried automatically: re-running a dispatch after a crash is an
    operator decision.

    Args:
        campaign_id: Campaign to send.
        tenant_id: Owning tenant.

    Returns:
        dict: Per-run counts and the final campaign status.
    """
    from revwave_core.domain.errors import RevwaveError
    from revwave_core.infrastructure.crypto import VaultError
    from revwave_worker.util.services import build_campaign_service, error_result, get_db_session

    db = get_db_session()
    try:
        service = build_campaign_service(db)
        result = asyncio.run(service.dispatch(campaign_id, tenant_id))
        return {"status": "success", **result.to_dict()}

    except (RevwaveError, VaultError) as exc:
        logger.error(f"Dispatch of campaign {campaign_id} aborted: {exc}", exc_info=True)
        return error_result(exc, campaign_id=campaign_id, tenant_id=tenant_id)

    finally:
        db.close()


@app.task(bind=True, name="campaigns.process_scheduled")
def process_scheduled(self) -> dict:
    """Enqueue every draft campaign whose scheduled time has passed.

    Returns:
        dict: Enqueued campaigns with their recipient counts.
    """
    from revwave_core.domain.services.dispatch_queue import CeleryDispatchQueue
    from revwave_worker.util.services import build_campaign_service, get_db_session

    db = get_db_session()
    try:
        service = build_campaign_service(db, dispatch_queue=CeleryDispatchQueue(app))
        results = service.process_scheduled_campaigns()
        return {
            "status": "success",
            "enqueued": len(results),
            "campaigns": [r.to_dict() for r in results],
        }

    finally:
        db.close()
