"""Tests for SOS bucket policies."""

from __future__ import annotations

from exoscale_iam_operator.services.exoscale.policy import build_sos_policy, buckets_from_policy


class TestBuildSosPolicy:
    """Test cases for build_sos_policy function."""

    def test_denies_other_services(self):
        policy = build_sos_policy(["backups"])
        assert policy["default-service-strategy"] == "deny"
        assert list(policy["services"]) == ["sos"]

    def test_denies_unlisted_buckets(self):
        rules = build_sos_policy(["backups", "logs"])["services"]["sos"]["rules"]
        assert rules[0] == {
            "action": "deny",
            "expression": "!(parameters.bucket in ['backups', 'logs'])",
        }
        assert rules[1]["action"] == "allow"


class TestBucketsFromPolicy:
    """Test cases for buckets_from_policy function."""

    def test_reads_back_buckets(self):
        assert buckets_from_policy(build_sos_policy(["backups", "logs"])) == ["backups", "logs"]

    def test_foreign_policy(self):
        policy = {"default-service-strategy": "allow", "services": {}}
        assert buckets_from_policy(policy) == []

    def test_missing_policy(self):
        assert buckets_from_policy(None) == []
