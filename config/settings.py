from pydantic_settings import BaseSettings
from typing import List


# STON.fi v1 router, transactions on this account are watched
STONFI_ROUTER_ADDRESS = "EQB3ncyBUTjZUA5EnFKR5_EnOMI9V1tTEAAPaiU71gc4TiUt"

# jUSDT/pTON pool used as the price anchor
ANCHOR_POOL_ADDRESS = "EQAKleHU6-eGDQUfi4YXMNve4UQP0RGAIRkU4AiRRlgDUbaM"

DISPLAY_FORMATS = ("pretty", "longpretty", "verbose", "csv")


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Chain access (toncenter compatible HTTP API)
    toncenter_urls: List[str] = ["https://toncenter.com/api/v2/jsonRPC"]
    toncenter_backup_urls: List[str] = []
    toncenter_api_key: str = ""
    rpc_timeout: int = 30
    rpc_max_retries: int = 3
    rpc_retry_delay: int = 1

    # Subscription
    poll_interval_seconds: float = 1.0
    transactions_page_size: int = 16

    # Watched contracts
    dex_address: str = STONFI_ROUTER_ADDRESS
    anchor_pool_address: str = ANCHOR_POOL_ADDRESS

    # Price anchor refresh and throughput reporting
    anchor_refresh_interval_seconds: float = 10.0
    throughput_report_interval_seconds: float = 10.0

    # Off-chain metadata fetch
    metadata_timeout: int = 15
    metadata_max_retries: int = 3

    # Per-swap units: 0 disables the bound / timeout
    max_concurrent_swaps: int = 0
    swap_timeout_seconds: float = 0

    # Output
    display_format: str = "pretty"
    broadcast_host: str = "localhost"
    broadcast_port: int = 8080

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"

    class Config:
        env_file = ".env"
        env_prefix = "SWAPWATCH_"


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
