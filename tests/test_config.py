"""
Tests for Settings, deploy config loading and ConfigValidator.
"""

import json
import logging

import pytest

from case_deploy.config import (
    ConfigValidator,
    DeployConfig,
    Settings,
    ValidationSeverity,
    check_name,
    check_seller_fee_basis_points,
    check_symbol,
    check_url,
    load_deploy_config,
    validate_and_log,
)
from case_deploy.core.errors import ConfigError, ValidationError
from case_deploy.gateway.base import Creator, HiddenSettings

from helpers import make_deploy_config

CASE_VARS = [
    "CASE_RPC_URL", "CASE_KEYPAIR", "CASE_PROGRAM_ID", "CASE_CACHE", "CASE_CONFIG",
    "CASE_UPLOAD_WORKERS", "CASE_WRITE_RETRIES", "CASE_RETRY_BASE_DELAY_SEC",
    "CASE_RPC_TIMEOUT_SEC", "CASE_COMMITMENT", "CASE_VERIFY_BEFORE_RETRY",
    "CASE_LOG_LEVEL", "CASE_LOG_FILE",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for var in CASE_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("CASE_SOLANA_CONFIG", str(tmp_path / "missing.yml"))
    return monkeypatch


class TestSettings:
    def test_defaults_without_solana_config(self, clean_env):
        cfg = Settings.load()
        assert cfg.rpc_url == "https://api.devnet.solana.com"
        assert cfg.keypair_path == "~/.config/solana/id.json"
        assert cfg.upload_workers == 0
        assert cfg.write_retries == 3
        assert cfg.verify_before_retry is True
        assert cfg.commitment == "confirmed"

    def test_solana_cli_config_fallback(self, clean_env, tmp_path):
        sol = tmp_path / "config.yml"
        sol.write_text("json_rpc_url: https://rpc.example\nkeypair_path: /keys/me.json\n")
        clean_env.setenv("CASE_SOLANA_CONFIG", str(sol))

        cfg = Settings.load()

        assert cfg.rpc_url == "https://rpc.example"
        assert cfg.keypair_path == "/keys/me.json"

    def test_env_overrides_solana_config(self, clean_env, tmp_path):
        sol = tmp_path / "config.yml"
        sol.write_text("json_rpc_url: https://rpc.example\n")
        clean_env.setenv("CASE_SOLANA_CONFIG", str(sol))
        clean_env.setenv("CASE_RPC_URL", "https://env.example")
        clean_env.setenv("CASE_UPLOAD_WORKERS", "6")
        clean_env.setenv("CASE_VERIFY_BEFORE_RETRY", "no")

        cfg = Settings.load()

        assert cfg.rpc_url == "https://env.example"
        assert cfg.upload_workers == 6
        assert cfg.verify_before_retry is False

    def test_cli_overrides_skip_none(self, clean_env):
        cfg = Settings.load().with_overrides(cache_path="other.json", rpc_url=None)
        assert cfg.cache_path == "other.json"
        assert cfg.rpc_url == "https://api.devnet.solana.com"

    @pytest.mark.parametrize("var,value", [
        ("CASE_WRITE_RETRIES", "0"),
        ("CASE_UPLOAD_WORKERS", "-1"),
        ("CASE_COMMITMENT", "eventual"),
    ])
    def test_sanity_checks(self, clean_env, var, value):
        clean_env.setenv(var, value)
        with pytest.raises(ValueError):
            Settings.load()


class TestDeployConfigLoading:
    def test_json_camel_case(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "number": 10,
            "symbol": "TARS",
            "sellerFeeBasisPoints": 250,
            "price": 0.5,
            "goLiveDate": "2026-12-01T00:00:00Z",
            "creators": [{"address": "C1", "share": 100}],
            "hiddenSettings": None,
        }))

        cfg = load_deploy_config(str(path))

        assert cfg.number == 10
        assert cfg.seller_fee_basis_points == 250
        assert cfg.price_lamports() == 500_000_000
        assert cfg.creators == [Creator(address="C1", share=100)]
        assert not cfg.hidden
        assert cfg.go_live_timestamp() == 1796083200

    def test_yaml_snake_case(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "number: 2\n"
            "hidden_settings:\n"
            "  name: Mystery\n"
            "  uri: https://m/h\n"
            "  hash: " + "a" * 32 + "\n"
            "collection_mint: Mint1\n"
        )

        cfg = load_deploy_config(str(path))

        assert cfg.hidden
        assert cfg.hidden_settings.name == "Mystery"
        assert cfg.collection_mint == "Mint1"
        settings = cfg.to_program_settings()
        assert settings.items_available == 2
        assert settings.uuid == ""

    def test_missing_number(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"symbol": "X"}))
        with pytest.raises(ConfigError, match="number"):
            load_deploy_config(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_deploy_config(str(tmp_path / "nope.json"))

    def test_bad_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{")
        with pytest.raises(ConfigError):
            load_deploy_config(str(path))

    def test_bad_go_live_date(self):
        cfg = DeployConfig(number=1, go_live_date="tomorrow")
        with pytest.raises(ConfigError):
            cfg.go_live_timestamp()


class TestFieldChecks:
    def test_limits(self):
        check_name("x" * 32)
        check_url("u" * 200)
        check_symbol("S" * 10)
        check_seller_fee_basis_points(10_000)
        with pytest.raises(ValidationError):
            check_name("x" * 33)
        with pytest.raises(ValidationError):
            check_url("u" * 201)
        with pytest.raises(ValidationError):
            check_symbol("S" * 11)
        with pytest.raises(ValidationError):
            check_seller_fee_basis_points(10_001)


class TestConfigValidator:
    def test_valid_config(self):
        result = ConfigValidator().validate(make_deploy_config(10))
        assert result.valid
        assert not result.has_errors()

    def test_creator_shares_must_total_100(self):
        cfg = make_deploy_config(1, creators=[Creator("A", 50), Creator("B", 40)])
        result = ConfigValidator().validate(cfg)
        assert not result.valid
        assert any("add up to 100" in i.message for i in result.get_errors())

    def test_too_many_creators(self):
        cfg = make_deploy_config(1, creators=[Creator(f"C{i}", 20) for i in range(5)])
        result = ConfigValidator().validate(cfg)
        assert any("At most 4" in i.message for i in result.get_errors())

    def test_hidden_hash_length(self):
        cfg = make_deploy_config(1, hidden_settings=HiddenSettings(name="n", uri="u", hash="abc"))
        result = ConfigValidator().validate(cfg)
        assert [i.field for i in result.get_errors()] == ["hidden_settings.hash"]

    def test_free_mint_is_warning(self):
        result = ConfigValidator().validate(make_deploy_config(1, price=0.0))
        assert result.valid
        assert result.get_warnings()[0].severity is ValidationSeverity.WARNING

    def test_custom_validator(self):
        validator = ConfigValidator()
        validator.register_validator(lambda cfg: [] if cfg.symbol else None)
        assert validator.validate(make_deploy_config(1)).valid

    def test_failing_custom_validator_is_an_error(self):
        def broken(cfg):
            raise RuntimeError("boom")

        validator = ConfigValidator()
        validator.register_validator(broken)
        result = validator.validate(make_deploy_config(1))
        assert not result.valid
        assert "boom" in result.get_errors()[0].message

    def test_validate_and_log(self, caplog):
        logger = logging.getLogger("config_validation_test")
        with caplog.at_level(logging.INFO, logger="config_validation_test"):
            ok = validate_and_log(make_deploy_config(1, symbol="WAY_TOO_LONG_SYMBOL"), logger)
        assert not ok
        assert '"event": "config_issue"' in caplog.text
        assert "symbol" in caplog.text
