from __future__ import annotations

from abc import ABC
from typing import Any

from loguru import logger


class BaseAdapter(ABC):
    """Protocol adapter bound to one chain; log lines carry adapter and chain id."""

    adapter_type: str | None = None

    def __init__(
        self,
        name: str,
        config: dict[str, Any] | None = None,
        *,
        chain_id: int | None = None,
    ):
        self.name = name
        self.config = config or {}
        self.chain_id = chain_id
        self.logger = logger.bind(adapter=self.__class__.__name__, chain_id=chain_id)

    async def close(self) -> None:
        pass
