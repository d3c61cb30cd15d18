"""Tests for the Exoscale IAM client."""

from __future__ import annotations

import time
from unittest.mock import Mock

import pytest
import requests

from exoscale_iam_operator.services.exoscale.client import ExoscaleIAMClient, classify_exception
from exoscale_iam_operator.services.exoscale.policy import build_sos_policy
from exoscale_iam_operator.utils.context import with_deadline
from exoscale_iam_operator.utils.errors import (
    NotFoundError,
    PermanentError,
    TransientError,
)


def http_error(status: int) -> requests.HTTPError:
    response = requests.Response()
    response.status_code = status
    return requests.HTTPError(f"{status} error", response=response)


@pytest.fixture
def sdk():
    mock_sdk = Mock()
    mock_sdk.create_iam_role.return_value = {"id": "op-1", "state": "success", "reference": {"id": "role-1"}}
    mock_sdk.create_api_key.return_value = {"key": "EXO1", "name": "backups", "secret": "s3cr3t", "role-id": "role-1"}
    mock_sdk.delete_api_key.return_value = {"id": "op-2", "state": "success"}
    mock_sdk.delete_iam_role.return_value = {"id": "op-3", "state": "success"}
    return mock_sdk


@pytest.fixture
def iam_client(sdk):
    return ExoscaleIAMClient("EXOkey", "secret", timeout=5.0, client_factory=lambda zone: sdk)


class TestClassifyException:
    """Test cases for classify_exception function."""

    def test_http_status(self):
        assert isinstance(classify_exception(http_error(404)), NotFoundError)
        assert isinstance(classify_exception(http_error(400)), PermanentError)
        assert isinstance(classify_exception(http_error(503)), TransientError)
        assert isinstance(classify_exception(http_error(429)), TransientError)

    def test_connection_errors_are_transient(self):
        assert isinstance(classify_exception(requests.ConnectionError("refused")), TransientError)
        assert isinstance(classify_exception(requests.Timeout("slow")), TransientError)

    def test_status_found_on_cause(self):
        """Test the status of a wrapped HTTP error is used."""
        try:
            try:
                raise http_error(404)
            except requests.HTTPError as e:
                raise RuntimeError("api call failed") from e
        except RuntimeError as wrapped:
            assert isinstance(classify_exception(wrapped), NotFoundError)

    def test_unknown_error_is_transient(self):
        assert isinstance(classify_exception(RuntimeError("boom")), TransientError)


class TestFetchById:
    """Test cases for fetch_by_id."""

    def test_fetch_reads_bucket_scope_from_role(self, iam_client, sdk):
        sdk.get_api_key.return_value = {"key": "EXO1", "name": "backups", "role-id": "role-1"}
        sdk.get_iam_role.return_value = {"id": "role-1", "policy": build_sos_policy(["a", "b"])}

        record = iam_client.fetch_by_id("ch-gva-2", "EXO1")

        assert record.key_id == "EXO1"
        assert record.role_id == "role-1"
        assert record.name == "backups"
        assert record.zone == "ch-gva-2"
        assert record.buckets == ["a", "b"]
        assert record.secret is None
        sdk.get_api_key.assert_called_once_with(id="EXO1")

    def test_fetch_missing_key(self, iam_client, sdk):
        sdk.get_api_key.side_effect = http_error(404)

        with pytest.raises(NotFoundError):
            iam_client.fetch_by_id("ch-gva-2", "EXO1")

    def test_fetch_missing_role_has_no_buckets(self, iam_client, sdk):
        sdk.get_api_key.return_value = {"key": "EXO1", "name": "backups", "role-id": "role-1"}
        sdk.get_iam_role.side_effect = http_error(404)

        record = iam_client.fetch_by_id("ch-gva-2", "EXO1")

        assert record.buckets == []

    def test_unknown_zone_is_permanent(self, iam_client, sdk):
        with pytest.raises(PermanentError, match="Unknown zone"):
            iam_client.fetch_by_id("mars-1", "EXO1")
        sdk.get_api_key.assert_not_called()


class TestCreate:
    """Test cases for create."""

    def test_create_role_then_key(self, iam_client, sdk):
        record = iam_client.create("ch-gva-2", "backups", ["a", "b"])

        assert record.key_id == "EXO1"
        assert record.role_id == "role-1"
        assert record.secret == "s3cr3t"
        assert record.buckets == ["a", "b"]
        role_kwargs = sdk.create_iam_role.call_args.kwargs
        assert role_kwargs["name"] == "backups"
        assert role_kwargs["policy"] == build_sos_policy(["a", "b"])
        sdk.create_api_key.assert_called_once_with(name="backups", role_id="role-1")

    def test_create_waits_for_pending_operation(self, iam_client, sdk):
        sdk.create_iam_role.return_value = {"id": "op-1", "state": "pending"}
        sdk.wait.return_value = {"id": "op-1", "state": "success", "reference": {"id": "role-9"}}

        record = iam_client.create("ch-gva-2", "backups", ["a"])

        sdk.wait.assert_called_once_with(operation_id="op-1")
        assert record.role_id == "role-9"

    def test_failed_operation_is_transient(self, iam_client, sdk):
        sdk.create_iam_role.return_value = {"id": "op-1", "state": "failure"}

        with pytest.raises(TransientError):
            iam_client.create("ch-gva-2", "backups", ["a"])
        sdk.create_api_key.assert_not_called()

    def test_key_failure_removes_role(self, iam_client, sdk):
        sdk.create_api_key.side_effect = http_error(400)

        with pytest.raises(PermanentError):
            iam_client.create("ch-gva-2", "backups", ["a"])
        sdk.delete_iam_role.assert_called_once_with(id="role-1")

    def test_empty_buckets_rejected(self, iam_client, sdk):
        with pytest.raises(PermanentError):
            iam_client.create("ch-gva-2", "backups", [])
        sdk.create_iam_role.assert_not_called()


class TestRevoke:
    """Test cases for revoke."""

    def test_revoke_deletes_key_and_role(self, iam_client, sdk):
        sdk.get_api_key.return_value = {"key": "EXO1", "name": "backups", "role-id": "role-1"}

        iam_client.revoke("ch-gva-2", "EXO1")

        sdk.delete_api_key.assert_called_once_with(id="EXO1")
        sdk.delete_iam_role.assert_called_once_with(id="role-1")

    def test_revoke_missing_key(self, iam_client, sdk):
        sdk.get_api_key.side_effect = http_error(404)

        with pytest.raises(NotFoundError):
            iam_client.revoke("ch-gva-2", "EXO1")
        sdk.delete_api_key.assert_not_called()

    def test_role_cleanup_failure_is_not_raised(self, iam_client, sdk):
        sdk.get_api_key.return_value = {"key": "EXO1", "name": "backups", "role-id": "role-1"}
        sdk.delete_iam_role.side_effect = http_error(500)

        iam_client.revoke("ch-gva-2", "EXO1")

        sdk.delete_api_key.assert_called_once_with(id="EXO1")


class TestListByName:
    """Test cases for list_by_name."""

    def test_filters_by_name(self, iam_client, sdk):
        sdk.list_api_keys.return_value = {
            "api-keys": [
                {"key": "EXO1", "name": "backups", "role-id": "role-1"},
                {"key": "EXO2", "name": "other", "role-id": "role-2"},
                {"key": "EXO3", "name": "backups", "role-id": "role-3"},
            ]
        }

        records = iam_client.list_by_name("ch-gva-2", "backups")

        assert [record.key_id for record in records] == ["EXO1", "EXO3"]

    def test_empty_response(self, iam_client, sdk):
        sdk.list_api_keys.return_value = {}
        assert iam_client.list_by_name("ch-gva-2", "backups") == []


class TestTimeouts:
    """Test cases for bounded calls."""

    def test_slow_call_times_out(self, sdk):
        sdk.get_api_key.side_effect = lambda **kwargs: time.sleep(1.0)
        iam_client = ExoscaleIAMClient("EXOkey", "secret", timeout=0.2, client_factory=lambda zone: sdk)

        with pytest.raises(TransientError, match="timed out"):
            iam_client.fetch_by_id("ch-gva-2", "EXO1")

    def test_expired_deadline_skips_call(self, iam_client, sdk):
        with with_deadline(-1):
            with pytest.raises(TransientError, match="Deadline exceeded"):
                iam_client.fetch_by_id("ch-gva-2", "EXO1")
        sdk.get_api_key.assert_not_called()

    def test_server_error_is_transient(self, iam_client, sdk):
        sdk.get_api_key.side_effect = http_error(502)

        with pytest.raises(TransientError):
            iam_client.fetch_by_id("ch-gva-2", "EXO1")
