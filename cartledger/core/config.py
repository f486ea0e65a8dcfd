"""
Application configuration management using Pydantic Settings
Handles environment variables, storage endpoints and the fee schedule
"""

from pydantic_settings import BaseSettings
from decimal import Decimal
from typing import List, Optional
from functools import lru_cache

class Settings(BaseSettings):
    """Main application settings"""
    
    # Application Settings
    APP_NAME: str = "CartLedger"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    
    # Database Configuration
    DATABASE_URL: str = "sqlite:///./cartledger.db"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 40
    DATABASE_POOL_TIMEOUT: int = 30
    DATABASE_ECHO: bool = False
    
    # Redis Configuration
    REDIS_URL: str = "redis://localhost:6379"
    REDIS_DECODE_RESPONSES: bool = True
    REDIS_MAX_CONNECTIONS: int = 50
    
    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000"]
    
    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = "logs/cartledger.log"
    LOG_MAX_BYTES: int = 10 * 1024 * 1024  # 10MB
    LOG_BACKUP_COUNT: int = 5
    
    # Fee schedule
    TAX_RATE_PERCENT: Decimal = Decimal("18")
    PLATFORM_FEE: Decimal = Decimal("5")
    BASE_SHIPPING_FEE: Decimal = Decimal("0")
    SHIPPING_DISCOUNT_PERCENTAGE: Decimal = Decimal("0")
    COD_FEE: Decimal = Decimal("15")
    
    # Cart behaviour
    STOCK_CHECK_TIMEOUT_SECONDS: float = 5.0
    GUEST_CART_TTL_DAYS: int = 30
    
    # Platform's own seller account (admin-listed products)
    ADMIN_SELLER_ID: Optional[str] = None
    
    class Config:
        env_file = ".env"
        case_sensitive = True
        
    @property
    def database_url_async(self) -> str:
        """Convert sync database URL to async"""
        if self.DATABASE_URL.startswith("postgresql://"):
            return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")
        elif self.DATABASE_URL.startswith("sqlite://"):
            return self.DATABASE_URL.replace("sqlite://", "sqlite+aiosqlite://")
        return self.DATABASE_URL

@lru_cache()
def get_settings() -> Settings:
    """
    Create cached settings instance
    This ensures settings are loaded only once
    """
    return Settings()

# Global settings instance
settings = get_settings()
