"""Tests for structured logging."""

from __future__ import annotations

import json
import logging

from exoscale_iam_operator.logging import log_resource_event, sanitize_secrets
from exoscale_iam_operator.utils.context import with_correlation_id


class TestLogResourceEvent:
    """Test cases for log_resource_event function."""

    def test_emits_json_with_correlation_id(self, caplog):
        logger = logging.getLogger("test.structured")

        with caplog.at_level(logging.INFO, logger="test.structured"):
            with with_correlation_id("abc123"):
                log_resource_event(
                    logger,
                    controller="exoscale-iam-operator",
                    resource_kind="IAMKey",
                    resource_name="backups",
                    uid="uid-1",
                    event="create",
                    reason="Created",
                    message="IAM key EXO1 ready",
                    key_id="EXO1",
                )

        record = json.loads(caplog.records[-1].getMessage())
        assert record["name"] == "backups"
        assert record["correlation_id"] == "abc123"
        assert record["key_id"] == "EXO1"

    def test_level_is_respected(self, caplog):
        logger = logging.getLogger("test.structured")

        with caplog.at_level(logging.INFO, logger="test.structured"):
            log_resource_event(
                logger, "c", "IAMKey", "backups", "uid", "reconcile", "Failed", "boom", level=logging.ERROR
            )

        assert caplog.records[-1].levelno == logging.ERROR


class TestSanitizeSecrets:
    """Test cases for sanitize_secrets function."""

    def test_redacts_secret_fields(self):
        result = sanitize_secrets({"secret": "abc", "name": "backups"})
        assert result == {"secret": "***REDACTED***", "name": "backups"}
