"""Datacenter storage holding the input files cloudlets may require."""

from typing import Dict, Optional
from loguru import logger

from .errors import ConfigurationError
from .provisioners import ResourceProvisioner


class Storage:
    """A storage device with a capacity (MB) and a maximum transfer rate (MB/s)."""

    def __init__(self, name: str, capacity: float, max_transfer_rate: float):
        if max_transfer_rate <= 0:
            raise ConfigurationError(f"Storage {name} transfer rate must be positive")
        self.name = name
        self.max_transfer_rate = max_transfer_rate
        self.space = ResourceProvisioner(f"{name}.space", capacity)
        self.files: Dict[str, float] = {}

    def add_file(self, file_name: str, size: float) -> None:
        """Store a file; raises ResourceExhausted when the device is full."""
        self.space.allocate(file_name, size)
        self.files[file_name] = size
        logger.debug(f"File {file_name} ({size} MB) stored on {self.name}")

    def delete_file(self, file_name: str) -> None:
        self.space.release(file_name)
        self.files.pop(file_name, None)

    def transfer_time(self, file_name: str) -> Optional[float]:
        """Seconds needed to read ``file_name``, or None if it is not stored here."""
        size = self.files.get(file_name)
        if size is None:
            return None
        return size / self.max_transfer_rate
