"""Application configuration and environment settings"""
from typing import Optional
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class RpcSettings(BaseModel):
    """JSON-RPC node settings used by the transaction signer"""
    url: str = Field(..., description="JSON-RPC endpoint")
    request_timeout: float = Field(..., description="Per-request timeout in seconds")
    confirmation_timeout: float = Field(..., description="Seconds to wait for a receipt")
    poll_interval: float = Field(..., description="Seconds between receipt polls")

class Settings(BaseSettings):
    """Application settings loaded from environment variables"""
    # Database settings
    DATABASE_URL: Optional[str] = Field(None, description="Full SQLAlchemy URL, overrides the DATABASE_* parts")
    DATABASE_HOST: str = Field("localhost", description="Database host")
    DATABASE_PORT: str = Field("5432", description="Database port")
    DATABASE_NAME: str = Field("prelaunch", description="Database name")
    DATABASE_USER: str = Field("user", description="Database user")
    DATABASE_PASSWORD: Optional[str] = Field(None, description="Database password")
    DATABASE_SSL_MODE: str = Field("prefer", description="PostgreSQL sslmode")

    # Launchpad settings
    PRIVACY_POOL_ADDRESS: str = Field("", description="Default privacy pool receiving shield transfers")

    # Chain settings
    RPC_URL: str = Field("http://localhost:8545", description="JSON-RPC endpoint of the chain node")
    RPC_TIMEOUT: float = Field(10.0, description="Per-request RPC timeout in seconds")
    CONFIRMATION_TIMEOUT: float = Field(120.0, description="Seconds to wait for a transaction receipt")
    CONFIRMATION_POLL_INTERVAL: float = Field(2.0, description="Seconds between receipt polls")

    LOG_LEVEL: str = Field("INFO", description="Root log level for the command line entry point")

    @property
    def rpc_settings(self) -> RpcSettings:
        """Get RPC settings as a separate model"""
        return RpcSettings(
            url=self.RPC_URL,
            request_timeout=self.RPC_TIMEOUT,
            confirmation_timeout=self.CONFIRMATION_TIMEOUT,
            poll_interval=self.CONFIRMATION_POLL_INTERVAL
        )

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=True,
        extra='ignore'
    )

settings = Settings()
