"""Tests for perpsim.config (environment-driven engine configuration)."""

from __future__ import annotations

import pytest

from perpsim.config import (
    DEFAULT_EXCHANGE_ADDRESS,
    DEFAULT_FORK_TIMEOUT_MS,
    DEFAULT_RPC_URL,
    EnvConfig,
    load_env_config,
)
from perpsim.env_parse import ConfigError

EOA = "0x1111111111111111111111111111111111111111"
PROXY = "0x2222222222222222222222222222222222222222"
# Address of secret key 1
KEY_ONE_ADDRESS = "0x7E5F4552091A69125d5DfCd7b8C2659029395Bdf"


class TestLoadEnvConfig:
    def test_defaults(self) -> None:
        config = load_env_config()

        assert config.chain.rpc_url == DEFAULT_RPC_URL
        assert config.chain.exchange_address == DEFAULT_EXCHANGE_ADDRESS
        assert config.fork.binary == "anvil"
        assert config.fork.start_timeout_ms == DEFAULT_FORK_TIMEOUT_MS
        assert config.fork.dry_run_fork is True
        assert config.account_address is None
        assert config.delegated_account is None

    def test_reads_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PERPSIM_RPC_URL", "http://localhost:8545")
        monkeypatch.setenv("PERPSIM_ACCOUNT_ADDRESS", EOA)
        monkeypatch.setenv("PERPSIM_DELEGATED_ACCOUNT", PROXY)
        monkeypatch.setenv("PERPSIM_ANVIL_BIN", "/opt/foundry/bin/anvil")
        monkeypatch.setenv("PERPSIM_FORK_TIMEOUT_MS", "45000")
        monkeypatch.setenv("PERPSIM_DRY_RUN_FORK", "off")

        config = load_env_config()

        assert config.chain.rpc_url == "http://localhost:8545"
        assert config.account_address == EOA
        assert config.delegated_account == PROXY
        assert config.fork.binary == "/opt/foundry/bin/anvil"
        assert config.fork.start_timeout_ms == 45_000
        assert config.fork.dry_run_fork is False

    def test_private_key_yields_address_only(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PERPSIM_OWNER_PRIVATE_KEY", "0" * 63 + "1")

        config = load_env_config()

        assert config.account_address == KEY_ONE_ADDRESS

    def test_explicit_address_wins_over_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PERPSIM_ACCOUNT_ADDRESS", EOA)
        monkeypatch.setenv("PERPSIM_OWNER_PRIVATE_KEY", "0" * 63 + "1")

        assert load_env_config().account_address == EOA

    def test_fork_timeout_below_minimum_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PERPSIM_FORK_TIMEOUT_MS", "50")
        with pytest.raises(ConfigError):
            load_env_config()

    def test_bad_exchange_address_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PERPSIM_EXCHANGE_ADDRESS", "not-an-address")
        with pytest.raises(ConfigError):
            load_env_config()


class TestSubjectAccount:
    def test_delegated_account_takes_precedence(self) -> None:
        config = EnvConfig(account_address=EOA, delegated_account=PROXY)
        assert config.subject_account == PROXY

    def test_falls_back_to_eoa(self) -> None:
        assert EnvConfig(account_address=EOA).subject_account == EOA

    def test_missing_account_raises(self) -> None:
        with pytest.raises(ConfigError, match="an account is required"):
            _ = EnvConfig().subject_account
