"""
Carrier identity and credentials

Credentials are opaque to the engine: they are built once (from settings or
by the host application) and handed to each carrier at construction time.
"""
import enum
from dataclasses import dataclass

from shipping_engine.core.config import settings


class CarrierCode(str, enum.Enum):
    """
    Supported shipping carriers.

    Each carrier is independently toggleable via SHIPPING_ENABLED_CARRIERS.
    """
    FEDEX = "FEDEX"
    UPS = "UPS"


@dataclass(frozen=True)
class CarrierCredentials:
    """OAuth client credentials plus the shipper account number."""
    client_id: str
    client_secret: str
    account_number: str
    use_sandbox: bool = False

    def __repr__(self) -> str:
        # Never print secrets
        return (
            f"CarrierCredentials(client_id={self.client_id[:4]!r}..., "
            f"account_number=***{self.account_number[-4:]}, use_sandbox={self.use_sandbox})"
        )


def credentials_for(carrier_code: CarrierCode) -> CarrierCredentials:
    """Build carrier credentials from environment settings."""
    if carrier_code == CarrierCode.FEDEX:
        return CarrierCredentials(
            client_id=settings.FEDEX_CLIENT_ID,
            client_secret=settings.FEDEX_CLIENT_SECRET,
            account_number=settings.FEDEX_ACCOUNT_NUMBER,
            use_sandbox=settings.FEDEX_USE_SANDBOX,
        )
    if carrier_code == CarrierCode.UPS:
        return CarrierCredentials(
            client_id=settings.UPS_CLIENT_ID,
            client_secret=settings.UPS_CLIENT_SECRET,
            account_number=settings.UPS_ACCOUNT_NUMBER,
            use_sandbox=settings.UPS_USE_SANDBOX,
        )
    raise ValueError(f"No credentials configured for carrier {carrier_code!r}")
