"""
Tests for configuration loading.
"""
from vendorcalc.config import VendorCalcConfig


class TestVendorCalcConfig:
    """Tests for VendorCalcConfig."""

    def test_defaults(self, monkeypatch):
        for name in ("VENDORCALC_DB_PATH", "VENDORCALC_REMOTE_URL", "VENDORCALC_RETRY_ATTEMPTS"):
            monkeypatch.delenv(name, raising=False)
        config = VendorCalcConfig.from_env()
        assert config.db_path == "vendorcalc.db"
        assert config.remote_url == ""
        assert config.retry_attempts == 3
        assert not config.remote_configured
        assert config.validate() == []

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("VENDORCALC_DB_PATH", "/tmp/shop.db")
        monkeypatch.setenv("VENDORCALC_REMOTE_URL", "https://remote.example")
        monkeypatch.setenv("VENDORCALC_REQUEST_TIMEOUT", "7.5")
        config = VendorCalcConfig.from_env()
        assert config.db_path == "/tmp/shop.db"
        assert config.remote_configured
        assert config.request_timeout == 7.5

    def test_garbage_numbers_fall_back(self, monkeypatch):
        monkeypatch.setenv("VENDORCALC_RETRY_ATTEMPTS", "many")
        monkeypatch.setenv("VENDORCALC_RETRY_DELAY", "soon")
        config = VendorCalcConfig.from_env()
        assert config.retry_attempts == 3
        assert config.retry_delay == 1.0

    def test_blank_remote_url_is_unconfigured(self):
        assert not VendorCalcConfig(remote_url="   ").remote_configured

    def test_validation(self):
        """Test config validation."""
        config = VendorCalcConfig(db_path="", request_timeout=0, retry_attempts=0, remote_url="ftp://x")
        errors = config.validate()
        assert len(errors) == 4
