from abc import ABC, abstractmethod
from typing import Any, Dict


class Provider(ABC):
    """Base for remote services the executor talks to"""

    name: str
    timeout_s: int = 10

    @abstractmethod
    async def ready(self) -> bool:
        """Whether the provider is configured well enough to be called"""

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Probe the remote side; never raises for transport failures"""
