"""TransferManifest for CDN uploads and downloads."""

from dataclasses import dataclass, field
from enum import Enum


class TransferStatus(str, Enum):
    LISTING = "listing"
    TRANSFERRING = "transferring"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclass
class TransferItem:
    local_path: str
    remote_key: str
    size: int = 0


@dataclass
class TransferManifest:
    items: list[TransferItem] = field(default_factory=list)
    transferred_bytes: int = 0
    transferred_files: int = 0
    status: TransferStatus = TransferStatus.LISTING

    @property
    def total_files(self) -> int:
        return len(self.items)

    @property
    def total_bytes(self) -> int:
        return sum(item.size for item in self.items)

    def record(self, item: TransferItem) -> None:
        self.transferred_files += 1
        self.transferred_bytes = min(self.total_bytes, self.transferred_bytes + item.size)
