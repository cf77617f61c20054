"""Process-wide configuration for perpsim.

Configuration is read-only once loaded: live endpoint, exchange address,
subject account and fork settings. Nothing here is mutated by a simulation.

Environment variables:
    PERPSIM_RPC_URL              Live JSON-RPC endpoint
    PERPSIM_EXCHANGE_ADDRESS     Exchange contract address
    PERPSIM_COLLATERAL_TOKEN     Collateral token address (informational)
    PERPSIM_ACCOUNT_ADDRESS      Trading account address
    PERPSIM_OWNER_PRIVATE_KEY    Alternative to ACCOUNT_ADDRESS; only the
                                 derived address is kept
    PERPSIM_DELEGATED_ACCOUNT    Account-proxy address, if trading through one
    PERPSIM_ANVIL_BIN            Fork tooling binary (default: anvil)
    PERPSIM_FORK_TIMEOUT_MS      Fork startup timeout (default: 30000)
    PERPSIM_RPC_TIMEOUT_S        Per-request RPC timeout (default: 30)
    PERPSIM_DRY_RUN_FORK         Run the fork step of dry-run (default: on)
"""

from __future__ import annotations

from dataclasses import dataclass, field

from eth_account import Account

from perpsim.env_parse import (
    ConfigError,
    parse_address,
    parse_bool,
    parse_int,
    parse_private_key,
    parse_str,
)

DEFAULT_RPC_URL = "https://testnet-rpc.monad.xyz"
DEFAULT_EXCHANGE_ADDRESS = "0x9C216D1Ab3e0407b3d6F1d5e9EfFe6d01C326ab7"
DEFAULT_COLLATERAL_TOKEN = "0xdF5B718d8FcC173335185a2a1513eE8151e3c027"
DEFAULT_FORK_TIMEOUT_MS = 30_000
DEFAULT_RPC_TIMEOUT_S = 30


@dataclass(frozen=True)
class ChainConfig:
    """Live ledger endpoint and exchange contract."""

    rpc_url: str = DEFAULT_RPC_URL
    exchange_address: str = DEFAULT_EXCHANGE_ADDRESS
    collateral_token: str = DEFAULT_COLLATERAL_TOKEN
    rpc_timeout_s: int = DEFAULT_RPC_TIMEOUT_S


@dataclass(frozen=True)
class ForkSettings:
    """Fork tooling settings.

    Attributes:
        binary: Fork tooling executable
        start_timeout_ms: Max time for the fork endpoint to become reachable
        dry_run_fork: Whether dry-run attempts the fork step at all
    """

    binary: str = "anvil"
    start_timeout_ms: int = DEFAULT_FORK_TIMEOUT_MS
    dry_run_fork: bool = True


@dataclass(frozen=True)
class EnvConfig:
    """Full engine configuration.

    Attributes:
        chain: Live endpoint and exchange
        account_address: Trader address (EOA)
        delegated_account: Account-proxy address; when set, the exchange
            account lives at this address instead of the EOA
        fork: Fork tooling settings
    """

    chain: ChainConfig = field(default_factory=ChainConfig)
    account_address: str | None = None
    delegated_account: str | None = None
    fork: ForkSettings = field(default_factory=ForkSettings)

    @property
    def subject_account(self) -> str:
        """Address that owns the exchange account."""
        if self.delegated_account:
            return self.delegated_account
        if self.account_address:
            return self.account_address
        raise ConfigError(
            "an account is required: set PERPSIM_ACCOUNT_ADDRESS or PERPSIM_OWNER_PRIVATE_KEY"
        )


def load_env_config() -> EnvConfig:
    """Load configuration from environment variables.

    Missing account settings are allowed here; entry points that need an
    account raise ConfigError via ``EnvConfig.subject_account``.
    """
    chain = ChainConfig(
        rpc_url=parse_str("PERPSIM_RPC_URL", DEFAULT_RPC_URL) or DEFAULT_RPC_URL,
        exchange_address=parse_address("PERPSIM_EXCHANGE_ADDRESS", DEFAULT_EXCHANGE_ADDRESS)
        or DEFAULT_EXCHANGE_ADDRESS,
        collateral_token=parse_address("PERPSIM_COLLATERAL_TOKEN", DEFAULT_COLLATERAL_TOKEN)
        or DEFAULT_COLLATERAL_TOKEN,
        rpc_timeout_s=parse_int("PERPSIM_RPC_TIMEOUT_S", DEFAULT_RPC_TIMEOUT_S, min_value=1),
    )

    account_address = parse_address("PERPSIM_ACCOUNT_ADDRESS")
    if account_address is None:
        key = parse_private_key("PERPSIM_OWNER_PRIVATE_KEY")
        if key is not None:
            account_address = Account.from_key(key).address

    fork = ForkSettings(
        binary=parse_str("PERPSIM_ANVIL_BIN", "anvil") or "anvil",
        start_timeout_ms=parse_int(
            "PERPSIM_FORK_TIMEOUT_MS", DEFAULT_FORK_TIMEOUT_MS, min_value=1000
        ),
        dry_run_fork=parse_bool("PERPSIM_DRY_RUN_FORK", default=True),
    )

    return EnvConfig(
        chain=chain,
        account_address=account_address,
        delegated_account=parse_address("PERPSIM_DELEGATED_ACCOUNT"),
        fork=fork,
    )
