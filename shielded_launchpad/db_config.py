# shielded_launchpad/db_config.py
"""Database configuration and credentials management"""
from dataclasses import dataclass
from urllib.parse import quote_plus

from shielded_launchpad.config import Settings, settings

@dataclass
class DatabaseCredentials:
    """Database credentials container"""
    host: str
    port: str
    name: str
    user: str
    password: str
    ssl_mode: str = 'prefer'

    def to_connection_string(self) -> str:
        """Generate database connection string with proper escaping"""
        return (
            f"postgresql://{quote_plus(self.user)}:{quote_plus(self.password)}@{self.host}:{self.port}/"
            f"{self.name}?sslmode={self.ssl_mode}"
        )

    @classmethod
    def from_settings(cls, config: Settings) -> 'DatabaseCredentials':
        """Create credentials from the DATABASE_* settings"""
        return cls(
            host=config.DATABASE_HOST,
            port=config.DATABASE_PORT,
            name=config.DATABASE_NAME,
            user=config.DATABASE_USER,
            password=config.DATABASE_PASSWORD or '',
            ssl_mode=config.DATABASE_SSL_MODE
        )

class DatabaseManager:
    """Resolves the connection string the application should use"""

    @staticmethod
    def get_connection_string(config: Settings) -> str:
        """
        Generate database connection string from settings

        Args:
            config: Application settings

        Returns:
            DATABASE_URL when set, otherwise a PostgreSQL URL built from the parts
        """
        if config.DATABASE_URL:
            return config.DATABASE_URL
        return DatabaseCredentials.from_settings(config).to_connection_string()

    @classmethod
    def initialize_from_env(cls) -> str:
        """
        Initialize database connection from environment variables

        Returns:
            Database connection string

        Raises:
            ValueError: If neither DATABASE_URL nor DATABASE_PASSWORD is set
        """
        if not settings.DATABASE_URL and not settings.DATABASE_PASSWORD:
            raise ValueError("DATABASE_URL or DATABASE_PASSWORD setting is required")

        return cls.get_connection_string(settings)
