"""WhatsApp template-message action."""

from typing import Any, Dict

import httpx

from ..core.credential_store import CredentialStore
from ..core.crypto import SecretCipher
from ..core.exceptions import CredentialMissingError, InvalidActionPayloadError, SendFailedError
from ..core.logging import get_logger
from ..core.payload import first_text, read_path
from ..models.core import ActionContext, ActionInput, CredentialType
from ..providers.whatsapp import PROVIDER_NAME, WhatsAppClient

logger = get_logger(__name__)

ACTION_NAME = "whatsapp.send_template"
PROVIDER = "whatsapp"


class WhatsAppTemplateAction:
    """Sends an approved template message to a lead.

    The recipient comes from ``config.to`` or, failing that, the trigger
    payload's ``lead.phone``. With ``dry_run`` set no credential is read and
    no request leaves the process.
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        cipher: SecretCipher,
        client: WhatsAppClient,
        dry_run: bool = True,
    ):
        self.credential_store = credential_store
        self.cipher = cipher
        self.client = client
        self.dry_run = dry_run

    async def __call__(self, action_input: ActionInput, context: ActionContext) -> Dict[str, Any]:
        config = action_input.config
        to = first_text(config.get("to"), read_path(context.trigger_payload, "lead.phone"))
        template = first_text(config.get("template"))
        if not to or not template:
            raise InvalidActionPayloadError(action_input.node_id, ACTION_NAME, "recipient and template are required")

        if self.dry_run:
            logger.info(f"Dry run: skipping WhatsApp send for node {action_input.node_id}")
            return {"action": action_input.action, "delivered": True, "dryRun": True}

        token_row = self.credential_store.get(
            context.tenant_id, context.client_id, PROVIDER, CredentialType.ACCESS_TOKEN.value
        )
        if token_row is None:
            raise CredentialMissingError(PROVIDER, CredentialType.ACCESS_TOKEN.value).add_context(
                node_id=action_input.node_id, client_id=context.client_id
            )
        access_token = self.cipher.decrypt(token_row.encrypted_secret)

        phone_number_id = first_text(config.get("phoneNumberId"))
        if not phone_number_id:
            raise InvalidActionPayloadError(action_input.node_id, ACTION_NAME, "missing phoneNumberId")

        try:
            response = await self.client.send_template(
                access_token,
                phone_number_id,
                to,
                template,
                language=first_text(config.get("language")) or None,
            )
        except httpx.HTTPError as e:
            raise SendFailedError(PROVIDER, node_id=action_input.node_id, reason=str(e))

        if not response.ok:
            raise SendFailedError(PROVIDER, status_code=response.status_code, node_id=action_input.node_id)

        logger.info(f"WhatsApp template '{template}' accepted for node {action_input.node_id}")
        return {
            "action": action_input.action,
            "delivered": True,
            "provider": PROVIDER_NAME,
            "response": response.body,
        }
