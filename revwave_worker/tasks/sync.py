"""Google Business Profile sync tasks.

Provides background processing for:
1. Syncing one tenant's locations and reviews
2. Fanning out a sync for every connected tenant
"""

import asyncio
import logging

from revwave_worker.celery_app import app

logger = logging.getLogger(__name__)


@app.task(
    bind=True,
    name="sync.run_tenant_sync",
    max_retries=3,
    default_retry_delay=300,
)
def run_tenant_sync(self, tenant_id: str) -> dict:
    """Sync locations and reviews for a tenant.

    Transient token refresh failures are retried; every other error is
    returned in the result.

    Args:
        tenant_id: Tenant to sync.

    Returns:
        dict: Sync counts and per-entity errors.
    """
    from revwave_core.domain.errors import RefreshFailed, RevwaveError
    from revwave_core.infrastructure.crypto import VaultError
    from revwave_worker.util.services import build_sync_service, error_result, get_db_session

    db = get_db_session()
    try:
        service = build_sync_service(db)
        result = asyncio.run(service.sync_tenant(tenant_id))

        return {
            "status": "partial" if result.errors else "success",
            "tenant_id": tenant_id,
            **result.to_dict(),
        }

    except RefreshFailed as exc:
        logger.warning(f"Sync for tenant {tenant_id} hit a transient refresh failure: {exc}")
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc)
        return error_result(exc, tenant_id=tenant_id)

    except (RevwaveError, VaultError) as exc:
        logger.error(f"Sync for tenant {tenant_id} failed: {exc}")
        return error_result(exc, tenant_id=tenant_id)

    finally:
        db.close()


@app.task(bind=True, name="sync.run_all_tenants")
def run_all_tenants(self) -> dict:
    """Queue a sync for every connected Google Business integration.

    Returns:
        dict: Queued tenant ids and task ids.
    """
    from revwave_core.config import get_settings
    from revwave_core.domain.services.integrations import IntegrationService
    from revwave_core.infrastructure.crypto import CryptoService
    from revwave_worker.util.services import get_db_session

    db = get_db_session()
    try:
        crypto = CryptoService(get_settings().encryption_key)
        integrations = IntegrationService(db, crypto).list_connected()

        if not integrations:
            logger.info("No connected integrations to sync")
            return {"status": "success", "queued": 0, "tasks": []}

        tasks = []
        for integration in integrations:
            task = run_tenant_sync.delay(integration.tenant_id)
            tasks.append({"tenant_id": integration.tenant_id, "task_id": task.id})

        logger.info(f"Queued sync for {len(tasks)} tenants")
        return {"status": "success", "queued": len(tasks), "tasks": tasks}

    finally:
        db.close()
