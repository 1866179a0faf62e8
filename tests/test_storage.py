"""Tests for credential, verification and execution persistence."""

import pytest

from outreach_engine.core.exceptions import (
    ExecutionConflictError,
    ExecutionNotFoundError,
    StorageError,
    create_error_response,
)
from outreach_engine.core.execution_log import ExecutionLog
from outreach_engine.models.core import (
    ExecutionStatusEnum,
    IntegrationVerification,
    VerificationCheck,
    VerificationStatus,
)
from outreach_engine.storage.database import drop_tables


def verification(status, **overrides):
    fields = dict(
        tenant_id="tenant-1",
        client_id="client-1",
        provider="whatsapp",
        check_type="test_send_live",
        status=status,
        checks=[VerificationCheck(key="connected", ok=True, detail="Access token present.")],
        evidence={"mode": "dry_run"},
        initiated_by="user-1",
    )
    fields.update(overrides)
    return IntegrationVerification(**fields)


class TestSqlCredentialStore:
    """Test cases for SqlCredentialStore."""

    def test_get_missing_returns_none(self, credential_store):
        assert credential_store.get("tenant-1", "client-1", "whatsapp", "access_token") is None

    def test_latest_save_wins(self, credential_store):
        credential_store.save("tenant-1", "client-1", "whatsapp", "access_token", "enc-1", "user-1")
        second = credential_store.save("tenant-1", "client-1", "whatsapp", "access_token", "enc-2", "user-2")

        current = credential_store.get("tenant-1", "client-1", "whatsapp", "access_token")

        assert current.id == second.id
        assert current.encrypted_secret == "enc-2"
        assert current.user_id == "user-2"

    def test_keys_are_isolated(self, credential_store):
        credential_store.save("tenant-1", "client-1", "whatsapp", "access_token", "enc-a", None)
        credential_store.save("tenant-2", "client-1", "whatsapp", "access_token", "enc-b", None)

        assert credential_store.get("tenant-1", "client-1", "whatsapp", "access_token").encrypted_secret == "enc-a"
        assert credential_store.get("tenant-2", "client-1", "whatsapp", "access_token").encrypted_secret == "enc-b"
        assert credential_store.get("tenant-1", "client-2", "whatsapp", "access_token") is None
        assert credential_store.get("tenant-1", "client-1", "whatsapp", "phone_number_id") is None

    def test_summary_omits_secret(self, credential_store):
        saved = credential_store.save("tenant-1", "client-1", "whatsapp", "access_token", "enc-secret", "user-1")

        assert "encrypted_secret" not in saved.summary()
        assert "enc-secret" not in repr(saved)


class TestSqlVerificationLog:
    """Test cases for SqlVerificationLog."""

    def test_append_assigns_id_and_timestamp(self, verification_log):
        record = verification_log.append(verification(VerificationStatus.PARTIAL))

        assert record.id is not None
        assert record.created_at is not None
        assert record.status == VerificationStatus.PARTIAL
        assert record.checks[0].key == "connected"
        assert record.evidence == {"mode": "dry_run"}

    def test_get_latest_returns_newest(self, verification_log):
        verification_log.append(verification(VerificationStatus.FAILED))
        newest = verification_log.append(verification(VerificationStatus.PASSED))

        latest = verification_log.get_latest("tenant-1", "client-1", "whatsapp", "test_send_live")

        assert latest.id == newest.id
        assert latest.status == VerificationStatus.PASSED

    def test_history_is_append_only(self, verification_log):
        for status in (VerificationStatus.FAILED, VerificationStatus.PARTIAL, VerificationStatus.PASSED):
            verification_log.append(verification(status))

        history = verification_log.list_history("tenant-1", "client-1", "whatsapp", "test_send_live")

        assert [record.status for record in history] == [
            VerificationStatus.PASSED, VerificationStatus.PARTIAL, VerificationStatus.FAILED
        ]
        assert len(verification_log.list_history("tenant-1", "client-1", "whatsapp", "test_send_live", limit=1)) == 1

    def test_get_latest_for_unknown_client(self, verification_log):
        assert verification_log.get_latest("tenant-1", "nobody", "whatsapp", "test_send_live") is None


class TestExecutionLog:
    """Test cases for ExecutionLog."""

    @pytest.fixture
    def execution_log(self, session_factory):
        return ExecutionLog(session_factory)

    def test_run_lifecycle(self, execution_log):
        execution_log.start_run("exec-1", "tenant-1", "client-1", "lead.created", workflow_id="wf-1")
        first = execution_log.record_event("exec-1", "info", "node.enter", {"nodeId": "t1", "nodeType": "trigger"})
        second = execution_log.record_event("exec-1", "warn", "node.trigger.skipped", {"nodeId": "t1"})
        execution_log.finalize_run("exec-1", ExecutionStatusEnum.COMPLETED, actions_executed=0)

        record = execution_log.get_execution("exec-1")

        assert (first, second) == (1, 2)
        assert record.status == ExecutionStatusEnum.COMPLETED
        assert record.workflow_id == "wf-1"
        assert record.completed_at is not None
        assert [event.event_type for event in record.events] == ["node.enter", "node.trigger.skipped"]
        assert record.events[0].node_id == "t1"
        assert record.events[1].level.value == "warn"

    def test_failed_run_keeps_error(self, execution_log):
        execution_log.start_run("exec-2", "tenant-1", "client-1", "lead.created")
        execution_log.finalize_run(
            "exec-2", ExecutionStatusEnum.FAILED, actions_executed=1,
            error_code="send_failed", error_message="whatsapp send failed: 500",
        )

        record = execution_log.get_execution("exec-2")

        assert record.status == ExecutionStatusEnum.FAILED
        assert record.error_code == "send_failed"
        assert record.actions_executed == 1

    def test_unknown_execution(self, execution_log):
        with pytest.raises(ExecutionNotFoundError):
            execution_log.get_execution("missing")

    def test_duplicate_run_conflicts(self, execution_log):
        execution_log.start_run("exec-3", "tenant-1", "client-1", "lead.created")

        with pytest.raises(ExecutionConflictError) as exc_info:
            execution_log.start_run("exec-3", "tenant-1", "client-1", "lead.created")

        assert exc_info.value.http_status == 409
        assert execution_log.get_execution("exec-3").status == ExecutionStatusEnum.RUNNING

    def test_storage_failure_hides_statement(self, execution_log, db_engine, caplog):
        drop_tables(db_engine)

        with pytest.raises(StorageError) as exc_info:
            execution_log.start_run("exec-4", "tenant-secret", "client-1", "lead.created")

        assert exc_info.value.message == "Failed to create execution exec-4"
        assert "INSERT" not in caplog.text
        assert "tenant-secret" not in caplog.text
        assert "no such table" in caplog.text


class TestStorageFailures:
    """Storage errors carry no SQL or bound parameters."""

    def test_failed_save_does_not_leak_ciphertext(self, credential_store, db_engine, caplog):
        drop_tables(db_engine)

        with pytest.raises(StorageError) as exc_info:
            credential_store.save("tenant-1", "client-1", "whatsapp", "access_token", "sealed-token-value", None)

        response = create_error_response(exc_info.value)
        assert "sealed-token-value" not in str(response)
        assert "sealed-token-value" not in caplog.text
        assert "INSERT" not in str(response)
        assert response["message"] == "Failed to save credential"

    def test_failed_read_is_storage_error(self, verification_log, db_engine):
        drop_tables(db_engine)

        with pytest.raises(StorageError) as exc_info:
            verification_log.get_latest("tenant-1", "client-1", "whatsapp", "test_send_live")

        assert "SELECT" not in exc_info.value.message
