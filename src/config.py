"""
Facilitator Configuration Management
Uses pydantic-settings for type-safe environment variable loading
"""

from typing import Literal
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FacilitatorConfig(BaseSettings):
    """Configuration for the facilitator FastAPI server"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Host to bind the server to")
    port: int = Field(default=3402, description="Port to bind the server to")

    # Base (EVM) Configuration
    base_rpc_url: str = Field(default="https://mainnet.base.org")
    base_private_key: str = Field(default="", description="Funding key for settlement gas")
    base_receipt_timeout: int = Field(default=120, description="Seconds to wait for a settlement receipt")

    # Solana Configuration
    solana_rpc_url: str = Field(default="https://api.mainnet-beta.solana.com")
    solana_private_key: str = Field(default="", description="Base58 or JSON array secret key")

    # Rate limiting (requests per minute per client)
    rate_limit: int = Field(default=100)

    # CORS Configuration
    cors_origins: list[str] = Field(default=["*"], description="Allowed CORS origins")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="text")

    # Development
    reload: bool = Field(default=False)

    @field_validator("base_private_key")
    @classmethod
    def validate_private_key(cls, v):
        if v and not v.startswith("0x"):
            return f"0x{v}"
        return v


# Singleton instance
_facilitator_config: FacilitatorConfig | None = None


def get_facilitator_config() -> FacilitatorConfig:
    """Get or create facilitator configuration singleton"""
    global _facilitator_config
    if _facilitator_config is None:
        _facilitator_config = FacilitatorConfig()
    return _facilitator_config
