"""In-memory cache of resolved smart accounts."""

import logging
from typing import Dict, Optional

from eth_utils import to_checksum_address

from core.gasless.models import SmartAccountRecord

logger = logging.getLogger(__name__)


class SmartAccountCache:
    """
    Cache of smart account records keyed by account address.

    Invalidation rule: a record is dropped after every successful relay on its
    account, since the nonce it holds is then stale. The owner -> address
    mapping is deterministic and survives invalidation.
    """

    def __init__(self):
        self._records: Dict[str, SmartAccountRecord] = {}
        self._owner_index: Dict[str, str] = {}

    def get(self, smart_account_address: str) -> Optional[SmartAccountRecord]:
        return self._records.get(to_checksum_address(smart_account_address))

    def address_for_owner(self, owner_address: str) -> Optional[str]:
        return self._owner_index.get(to_checksum_address(owner_address))

    def get_by_owner(self, owner_address: str) -> Optional[SmartAccountRecord]:
        address = self.address_for_owner(owner_address)
        if address is None:
            return None
        return self._records.get(address)

    def put(self, record: SmartAccountRecord) -> None:
        address = to_checksum_address(record.smart_account_address)
        self._records[address] = record
        self._owner_index[to_checksum_address(record.owner_address)] = address

    def remember_owner(self, owner_address: str, smart_account_address: str) -> None:
        """Record the deterministic owner -> account mapping."""
        self._owner_index[to_checksum_address(owner_address)] = to_checksum_address(
            smart_account_address
        )

    def update_nonce(self, smart_account_address: str, nonce: int) -> None:
        record = self.get(smart_account_address)
        if record is not None:
            record.cached_nonce = nonce

    def invalidate(self, smart_account_address: str) -> None:
        address = to_checksum_address(smart_account_address)
        if self._records.pop(address, None) is not None:
            logger.debug(f"Invalidated cached smart account {address[:10]}...")

    def clear(self) -> None:
        self._records.clear()
        self._owner_index.clear()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, smart_account_address: str) -> bool:
        return to_checksum_address(smart_account_address) in self._records
