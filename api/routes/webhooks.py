"""Webhook endpoints.

Odoo (via an automated action) notifies record changes here. Each
notification becomes a pull job for every active module that maps the
changed model and is allowed to pull.
"""

import hmac
from typing import Dict, List, Literal, Optional

from fastapi import APIRouter, Header, HTTPException, Request
from pydantic import BaseModel, Field

from core.observability.logging import get_logger
from core.sync.entities import SyncAction
from sync_queue.models import JobDirection


router = APIRouter()
logger = get_logger(__name__)


# Remote event -> action of the resulting pull job
EVENT_ACTIONS: Dict[str, SyncAction] = {
    "create": SyncAction.CREATE,
    "write": SyncAction.UPDATE,
    "unlink": SyncAction.DELETE,
}


class OdooWebhookEvent(BaseModel):
    """Record change notification sent by Odoo."""
    model: str = Field(..., min_length=1, description="Remote model, e.g. res.partner")
    id: int = Field(..., gt=0, description="Remote record id")
    event: Literal["create", "write", "unlink"]


class WebhookResponse(BaseModel):
    """Number of pull jobs queued for the event."""
    queued: int
    modules: List[str] = Field(default_factory=list)


def _check_token(expected: str, provided: Optional[str]) -> None:
    if not expected or not provided or not hmac.compare_digest(expected, provided):
        raise HTTPException(status_code=401, detail="Invalid sync token")


@router.post("/webhooks/odoo", response_model=WebhookResponse)
async def odoo_webhook(
    body: OdooWebhookEvent,
    request: Request,
    x_sync_token: Optional[str] = Header(default=None),
) -> WebhookResponse:
    """Queue pulls for a changed remote record."""
    runtime = request.app.state.runtime
    _check_token(runtime.settings.webhook_token, x_sync_token)

    action = EVENT_ACTIONS[body.event]
    queued = 0
    modules: List[str] = []

    for module in runtime.registry.find_by_remote_model(body.model):
        if not module.direction.allows_pull:
            continue
        for entity_type, spec in module.definition.entities.items():
            if spec.remote_model != body.model:
                continue
            runtime.queue.enqueue(
                module=module.id,
                direction=JobDirection.REMOTE_TO_LOCAL,
                entity_type=entity_type,
                action=action.value,
                remote_id=body.id,
                local_id=runtime.entity_map.get_local_id(module.id, entity_type, body.id) or 0,
            )
            queued += 1
        if module.id not in modules:
            modules.append(module.id)

    logger.info(
        f"Webhook {body.event} on {body.model}: {queued} pull job(s) queued",
        extra_fields={"remote_id": body.id, "modules": ",".join(modules)},
    )
    return WebhookResponse(queued=queued, modules=modules)
