"""CRM status action."""

from typing import Any, Dict

from ..core.exceptions import InvalidActionPayloadError
from ..core.payload import first_text
from ..models.core import ActionContext, ActionInput

ACTION_NAME = "crm.update_status"


async def update_crm_status(action_input: ActionInput, context: ActionContext) -> Dict[str, Any]:
    """Acknowledge a lead status change requested by ``config.status``."""
    status = first_text(action_input.config.get("status"))
    if not status:
        raise InvalidActionPayloadError(action_input.node_id, ACTION_NAME, "missing status")
    return {"action": action_input.action, "updated": True, "status": status}
