"""WhatsApp integration operations: credential onboarding, status and verification."""

from typing import Any, Dict, List, Optional

import httpx

from ..models.core import (
    Credential, CredentialType, IntegrationContract, IntegrationVerification,
    VerificationCheck, VerificationMode, VerificationStatus
)
from ..providers.whatsapp import WhatsAppClient
from .credential_store import CredentialStore, VerificationLog
from .crypto import SecretCipher
from .exceptions import CipherError
from .integration_contract import DEFAULT_MAX_AGE_DAYS, evaluate_whatsapp_contract
from .logging import get_logger

logger = get_logger(__name__)

PROVIDER = "whatsapp"
CHECK_TYPE = "test_send_live"
DEFAULT_TEMPLATE = "hello_world"


class WhatsAppIntegration:
    """Manages a client's WhatsApp credentials and proves they work.

    Secrets are encrypted before they reach the credential store and are only
    decrypted for the duration of a live verification send.
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        verification_log: VerificationLog,
        cipher: SecretCipher,
        client: WhatsAppClient,
        allow_live: bool = False,
        max_age_days: int = DEFAULT_MAX_AGE_DAYS,
        default_language: str = "en_US",
    ):
        self.credential_store = credential_store
        self.verification_log = verification_log
        self.cipher = cipher
        self.client = client
        self.allow_live = allow_live
        self.max_age_days = max_age_days
        self.default_language = default_language

    def _save(self, tenant_id: str, client_id: str, credential_type: CredentialType,
              secret: str, user_id: Optional[str]) -> Credential:
        return self.credential_store.save(
            tenant_id, client_id, PROVIDER, credential_type.value,
            self.cipher.encrypt(secret), user_id,
        )

    def _get(self, tenant_id: str, client_id: str, credential_type: CredentialType) -> Optional[Credential]:
        return self.credential_store.get(tenant_id, client_id, PROVIDER, credential_type.value)

    def connect(self, tenant_id: str, client_id: str, access_token: str, phone_number_id: str,
                waba_id: Optional[str] = None, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Encrypt and store a client's WhatsApp credentials.

        Returns the access-token credential metadata and an initial contract
        in which the test send has not yet passed.
        """
        credential = self._save(tenant_id, client_id, CredentialType.ACCESS_TOKEN, access_token, user_id)
        self._save(tenant_id, client_id, CredentialType.PHONE_NUMBER_ID, phone_number_id, user_id)
        if waba_id:
            self._save(tenant_id, client_id, CredentialType.WABA_ID, waba_id, user_id)

        logger.info(f"WhatsApp credentials connected for client {client_id}")
        return {
            "credential": credential.summary(),
            "sample_response": {
                "connected": True,
                "verified": bool(phone_number_id),
                "test_send_passed": False,
            },
        }

    def rotate_access_token(self, tenant_id: str, client_id: str, access_token: str,
                            user_id: Optional[str] = None) -> Dict[str, Any]:
        """Store a new access token; it replaces the previous one on the next read."""
        credential = self._save(tenant_id, client_id, CredentialType.ACCESS_TOKEN, access_token, user_id)
        logger.info(f"WhatsApp access token rotated for client {client_id}")
        return {"rotated": True, "credential": credential.summary()}

    def _latest_verification(self, tenant_id: str, client_id: str) -> Optional[IntegrationVerification]:
        return self.verification_log.get_latest(tenant_id, client_id, PROVIDER, CHECK_TYPE)

    def _evaluate(self, tenant_id: str, client_id: str,
                  latest: Optional[IntegrationVerification]) -> IntegrationContract:
        return evaluate_whatsapp_contract(
            has_access_token=self._get(tenant_id, client_id, CredentialType.ACCESS_TOKEN) is not None,
            has_phone_number_id=self._get(tenant_id, client_id, CredentialType.PHONE_NUMBER_ID) is not None,
            latest_live_verification_ok=latest is not None and latest.status == VerificationStatus.PASSED,
            latest_live_verification_at=latest.created_at if latest else None,
            max_age_days=self.max_age_days,
        )

    def contract(self, tenant_id: str, client_id: str) -> IntegrationContract:
        """Compute the current readiness contract for a client."""
        return self._evaluate(tenant_id, client_id, self._latest_verification(tenant_id, client_id))

    def status(self, tenant_id: str, client_id: str) -> Dict[str, Any]:
        """Return the contract together with a summary of the verification it was computed from."""
        latest = self._latest_verification(tenant_id, client_id)
        return {
            "provider": PROVIDER,
            "contract": self._evaluate(tenant_id, client_id, latest).model_dump(),
            "latest_verification": {
                "id": latest.id,
                "status": latest.status.value,
                "created_at": latest.created_at.isoformat() if latest.created_at else None,
            } if latest else None,
        }

    async def verify(
        self,
        tenant_id: str,
        client_id: str,
        test_recipient: str,
        mode: VerificationMode = VerificationMode.DRY_RUN,
        template: Optional[str] = None,
        language: Optional[str] = None,
        initiated_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Check the stored credentials and, in live mode, send a test template.

        Every call appends exactly one verification record.

        Returns:
            ``{"ok": bool, "verification": IntegrationVerification}``

        Raises:
            CipherError: A stored secret could not be decrypted; a failed record is appended first
        """
        mode = VerificationMode(mode)
        token = self._get(tenant_id, client_id, CredentialType.ACCESS_TOKEN)
        phone = self._get(tenant_id, client_id, CredentialType.PHONE_NUMBER_ID)

        checks: List[VerificationCheck] = [
            VerificationCheck(
                key="connected",
                ok=token is not None,
                detail="Access token present." if token else "Missing WhatsApp access token.",
            ),
            VerificationCheck(
                key="verified",
                ok=phone is not None,
                detail="Phone number id present." if phone else "Missing WhatsApp phone number id.",
            ),
        ]
        evidence: Dict[str, Any] = {"mode": mode.value}

        def append(status: VerificationStatus) -> IntegrationVerification:
            return self.verification_log.append(IntegrationVerification(
                tenant_id=tenant_id,
                client_id=client_id,
                provider=PROVIDER,
                check_type=CHECK_TYPE,
                status=status,
                checks=checks,
                evidence=evidence,
                initiated_by=initiated_by,
            ))

        if token is None or phone is None:
            status = VerificationStatus.FAILED
        elif mode == VerificationMode.LIVE and not self.allow_live:
            checks.append(VerificationCheck(
                key=CHECK_TYPE,
                ok=False,
                detail="Live verification is disabled by VERIFY_ALLOW_LIVE=false.",
            ))
            status = VerificationStatus.FAILED
        elif mode == VerificationMode.DRY_RUN:
            checks.append(VerificationCheck(
                key=CHECK_TYPE,
                ok=False,
                detail="Dry run completed. Run mode=live to satisfy test-send pass contract.",
            ))
            status = VerificationStatus.PARTIAL
        else:
            try:
                access_token = self.cipher.decrypt(token.encrypted_secret)
                phone_number_id = self.cipher.decrypt(phone.encrypted_secret)
            except CipherError as e:
                checks.append(VerificationCheck(key=CHECK_TYPE, ok=False, detail="Stored credential could not be decrypted."))
                evidence["error"] = e.error_code
                append(VerificationStatus.FAILED)
                logger.error(f"Verification for client {client_id} aborted: {e.message}")
                raise

            status = await self._live_send(
                access_token, phone_number_id, test_recipient, template, language, checks, evidence
            )

        record = append(status)
        logger.info(f"WhatsApp verification for client {client_id} finished as {status.value} ({mode.value})")
        return {"ok": status == VerificationStatus.PASSED, "verification": record}

    async def _live_send(self, access_token: str, phone_number_id: str, test_recipient: str,
                         template: Optional[str], language: Optional[str],
                         checks: List[VerificationCheck], evidence: Dict[str, Any]) -> VerificationStatus:
        try:
            response = await self.client.send_template(
                access_token,
                phone_number_id,
                str(test_recipient or "").strip(),
                str(template or DEFAULT_TEMPLATE).strip() or DEFAULT_TEMPLATE,
                language=str(language or "").strip() or self.default_language,
            )
        except httpx.HTTPError as e:
            evidence["error"] = str(e)
            checks.append(VerificationCheck(key=CHECK_TYPE, ok=False, detail=f"Live test-send failed ({e})."))
            return VerificationStatus.FAILED

        evidence["httpStatus"] = response.status_code
        evidence["response"] = response.body
        if response.ok:
            checks.append(VerificationCheck(key=CHECK_TYPE, ok=True, detail="Live test-send succeeded."))
            return VerificationStatus.PASSED
        checks.append(VerificationCheck(
            key=CHECK_TYPE,
            ok=False,
            detail=f"Live test-send failed ({response.status_code}).",
        ))
        return VerificationStatus.FAILED
