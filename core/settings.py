from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import ConfigDict
from pydantic_settings import BaseSettings

# Load .env file automatically
load_dotenv()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite:///./paypal_express_checkout.db"
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20
    DATABASE_POOL_TIMEOUT: int = 30
    DATABASE_POOL_RECYCLE: int = 3600

    # PayPal NVP API credentials
    PAYPAL_API_USERNAME: str
    PAYPAL_API_PASSWORD: str
    PAYPAL_SIGNATURE: str

    # Express Checkout behaviour
    PAYPAL_MODE: Literal["test", "live"] = "test"
    PAYPAL_SOLUTION_TYPE: Literal["Mark", "SoleLogin", "SoleBilling"] = "Mark"
    PAYPAL_PAYMENT_ACTION: Literal["Authorization", "Sale"] = "Authorization"
    PAYPAL_REFERENCE_TRANSACTIONS: bool = False
    PAYPAL_BA_DESC: Optional[str] = None

    # Seconds before an NVP call or IPN postback is abandoned by the transport
    PAYPAL_TIMEOUT: float = 30.0

    # App settings
    APP_NAME: str = "PayPal Express Checkout"
    ENVIRONMENT: Literal["development", "test", "production"] = "development"

    # Observability
    OTEL_SERVICE_NAME: str = "paypal-express-checkout"

    model_config = ConfigDict(env_file=".env", case_sensitive=True)

    @property
    def is_test_mode(self) -> bool:
        return self.PAYPAL_MODE == "test"

    @property
    def billing_agreement_enabled(self) -> bool:
        """Reference transactions need both the flag and a description."""
        return bool(self.PAYPAL_REFERENCE_TRANSACTIONS and self.PAYPAL_BA_DESC)


_settings: Optional[Settings] = None


def init_settings(**overrides) -> Settings:
    """Build the process-wide settings; ``overrides`` win over the environment."""
    global _settings
    _settings = Settings(**overrides)
    return _settings


def get_settings() -> Settings:
    """FastAPI dependency serving the settings built at startup."""
    if _settings is None:
        raise RuntimeError("Settings not initialized; init_settings() runs at app startup")
    return _settings


def clear_settings() -> None:
    global _settings
    _settings = None
