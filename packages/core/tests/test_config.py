"""配置加载测试"""

from decimal import Decimal

from campusgig.core.config import get_db_path, load_lifecycle_policy
from campusgig.core.marketplace import Marketplace


class TestDbPath:
    def test_default_under_data_dir(self, monkeypatch):
        monkeypatch.delenv("CAMPUSGIG_DB_PATH", raising=False)
        monkeypatch.setenv("CAMPUSGIG_DATA_DIR", "/tmp/cg")
        assert get_db_path() == "/tmp/cg/sqlite/campusgig.db"

    def test_explicit_path(self, monkeypatch):
        monkeypatch.setenv("CAMPUSGIG_DB_PATH", "/tmp/x.db")
        assert get_db_path() == "/tmp/x.db"


class TestLifecyclePolicy:
    def test_defaults(self, monkeypatch):
        for var in (
            "CAMPUSGIG_CANCEL_FEE_THRESHOLD",
            "CAMPUSGIG_CANCEL_FEE_RATE",
            "CAMPUSGIG_CANCEL_FEE_MINIMUM",
            "CAMPUSGIG_NOTIFY_MAX_ATTEMPTS",
            "CAMPUSGIG_NOTIFY_RETRY_DELAY_S",
        ):
            monkeypatch.delenv(var, raising=False)
        policy = load_lifecycle_policy()
        assert policy.cancellation_fee_threshold == 3
        assert policy.cancellation_fee_rate == Decimal("0.10")
        assert policy.cancellation_fee_minimum == Decimal("1.00")
        assert policy.notify_max_attempts == 3

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("CAMPUSGIG_CANCEL_FEE_THRESHOLD", "5")
        monkeypatch.setenv("CAMPUSGIG_CANCEL_FEE_RATE", "0.2")
        monkeypatch.setenv("CAMPUSGIG_NOTIFY_RETRY_DELAY_S", "0.5")
        policy = load_lifecycle_policy()
        assert policy.cancellation_fee_threshold == 5
        assert policy.cancellation_fee_rate == Decimal("0.2")
        assert policy.notify_retry_base_delay_s == 0.5

    def test_invalid_values_fall_back(self, monkeypatch):
        monkeypatch.setenv("CAMPUSGIG_CANCEL_FEE_THRESHOLD", "three")
        monkeypatch.setenv("CAMPUSGIG_CANCEL_FEE_MINIMUM", "one dollar")
        policy = load_lifecycle_policy()
        assert policy.cancellation_fee_threshold == 3
        assert policy.cancellation_fee_minimum == Decimal("1.00")

    def test_out_of_range_values_fall_back(self, monkeypatch):
        monkeypatch.setenv("CAMPUSGIG_NOTIFY_MAX_ATTEMPTS", "0")
        monkeypatch.setenv("CAMPUSGIG_CANCEL_FEE_RATE", "-0.5")
        monkeypatch.setenv("CAMPUSGIG_CANCEL_FEE_THRESHOLD", "5")
        policy = load_lifecycle_policy()
        assert policy.notify_max_attempts == 3
        assert policy.cancellation_fee_rate == Decimal("0.10")
        assert policy.cancellation_fee_threshold == 5

    async def test_marketplace_starts_with_out_of_range_policy(self, monkeypatch, store_group):
        monkeypatch.setenv("CAMPUSGIG_NOTIFY_MAX_ATTEMPTS", "0")
        market = Marketplace(store_group)
        assert market.policy.notify_max_attempts == 3
