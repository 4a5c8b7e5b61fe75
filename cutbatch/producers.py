"""Async HTTP producers that generate one asset per cut."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Hashable, Mapping, Optional

import httpx


class HttpAssetProducer:
    """POST ``{"unit_id", "kind"}`` to a generation endpoint; usable as a batch executor."""

    def __init__(
        self,
        *,
        base_url: str,
        route: str,
        kind: str,
        timeout: float,
        logger: Optional[logging.Logger] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.route = "/" + route.lstrip("/")
        self.kind = kind
        self.logger = logger or logging.getLogger(__name__)
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def __call__(self, unit_id: Hashable) -> Dict[str, Any]:
        return await self.generate(unit_id)

    async def generate(self, unit_id: Hashable) -> Dict[str, Any]:
        payload = {"unit_id": unit_id, "kind": self.kind}
        start = time.perf_counter()
        response = await self._client.post(self.route, json=payload)
        elapsed = time.perf_counter() - start
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError:
            self.logger.error("%s%s responded with HTTP %s for %s", self.base_url, self.route, response.status_code, unit_id)
            raise
        self.logger.debug("%s asset for %s generated in %.2fs", self.kind, unit_id, elapsed)
        data = response.json() if response.content else {}
        return data if isinstance(data, Mapping) else {"value": data}

    async def aclose(self) -> None:
        await self._client.aclose()


def build_producers(
    config: Mapping[str, Any],
    *,
    logger: Optional[logging.Logger] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, HttpAssetProducer]:
    """Return a ``kind -> producer`` mapping from the ``producers`` config section."""

    section = config.get("producers", {})
    base_url = str(section.get("base_url"))
    timeout = float(section.get("timeout", 120))
    producers: Dict[str, HttpAssetProducer] = {}
    for kind in ("image", "audio"):
        entry = section.get(kind) or {}
        route = entry.get("route") if isinstance(entry, Mapping) else None
        if not route:
            continue
        producers[kind] = HttpAssetProducer(
            base_url=str(entry.get("base_url") or base_url),
            route=str(route),
            kind=kind,
            timeout=timeout,
            logger=logger,
            transport=transport,
        )
    return producers


__all__ = ["HttpAssetProducer", "build_producers"]
