from .smart_account_resolver import SmartAccountResolver
from .relay_executor import RelayExecutor
from .gasless_service import GaslessService
from .gasless_client import GaslessClient

__all__ = ["SmartAccountResolver", "RelayExecutor", "GaslessService", "GaslessClient"]
