from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class PipelineSettings(BaseSettings):
    # Chain and relay endpoints
    sui_rpc_url: str = "https://fullnode.testnet.sui.io:443"
    upload_relay_host: str = "https://upload-relay.testnet.walrus.space"

    # On-chain identifiers
    walrus_package_id: str = "0x0"
    walrus_system_object_id: str = "0x0"
    walrus_system_state_object_id: Optional[str] = None
    app_package_id: str = "0x0"
    dex_bank_id: str = "0x0"
    settlement_coin_type: str = "0x0::wal::WAL"
    exchange_function: str = "mock_dex::swap_sui_for_token"
    escrow_package_id: str = "0x0"
    escrow_threshold: int = 2

    # Registration
    retention_epochs: int = 1
    deletable: bool = False
    encoding_type: str = "RS2"
    shard_count: Optional[int] = None

    # Cost
    storage_rate: int = 1
    write_rate: int = 0
    price_unit_bytes: int = 1
    exchange_rate_numerator: int = 2
    exchange_rate_denominator: int = 1
    funding_buffer_bps: int = 500
    funding_flat_buffer: int = 0

    # Timing
    split_seconds: float = 10.0
    visibility_timeout: float = 60.0
    visibility_poll_interval: float = 1.0
    transmit_max_attempts: int = 3
    transmit_backoff_base: float = 1.0
    http_timeout: float = 60.0

    log_level: str = "INFO"

    class Config:
        env_prefix = "SUISTREAM_"
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def blob_type(self) -> str:
        return f"{self.walrus_package_id}::blob::Blob"


@lru_cache()
def get_settings() -> PipelineSettings:
    return PipelineSettings()
