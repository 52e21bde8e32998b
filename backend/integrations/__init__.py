"""External API integrations.

This package contains:
- Provider protocol: The broker client interface and its data types
- Exceptions: Typed provider errors raised by the adapters
- SnapTrade client: Integration with the SnapTrade API
"""

from integrations.provider_protocol import (
    BrokerAccount,
    BrokerBalance,
    BrokerClient,
    BrokerPosition,
    RegisteredUser,
)

__all__ = [
    "BrokerAccount",
    "BrokerBalance",
    "BrokerClient",
    "BrokerPosition",
    "RegisteredUser",
]
