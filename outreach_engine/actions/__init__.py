"""Built-in action adapters."""

from ..core.action_registry import ActionDispatcher
from ..core.credential_store import CredentialStore
from ..core.crypto import SecretCipher
from ..core.logging import get_logger
from ..providers.whatsapp import WhatsAppClient
from . import crm, email, whatsapp
from .crm import update_crm_status
from .email import EmailSendAction
from .whatsapp import WhatsAppTemplateAction

logger = get_logger(__name__)


def register_default_actions(
    dispatcher: ActionDispatcher,
    credential_store: CredentialStore,
    cipher: SecretCipher,
    whatsapp_client: WhatsAppClient,
    dry_run: bool = True,
) -> ActionDispatcher:
    """Register the WhatsApp, email and CRM adapters on a dispatcher."""
    actions_to_register = [
        (
            whatsapp.ACTION_NAME,
            WhatsAppTemplateAction(credential_store, cipher, whatsapp_client, dry_run=dry_run),
            "Send a WhatsApp template message to the lead",
        ),
        (email.ACTION_NAME, EmailSendAction(dry_run=dry_run), "Send a templated email to the lead"),
        (crm.ACTION_NAME, update_crm_status, "Update the lead's CRM status"),
    ]

    for action_name, handler, description in actions_to_register:
        dispatcher.register_action(action_name, handler, description)

    logger.info(f"Default actions registered (dry_run={dry_run})")
    return dispatcher


__all__ = [
    "register_default_actions",
    "WhatsAppTemplateAction",
    "EmailSendAction",
    "update_crm_status",
]
