import asyncio
import logging
from typing import Dict, List, Optional
from urllib.parse import quote

import httpx

from machinebio.core.cache import TTLCache
from machinebio.core.retry import async_retry, RetryableError, NonRetryableError
from machinebio.services.exceptions import ExternalServiceError, ValidationError

logger = logging.getLogger(__name__)


class NhtsaClient:
    """
    Client for the NHTSA vPIC vehicle API.

    The full make list changes rarely and is large, so it is cached in the
    `TTLCache` handed in by the owner of the client (one per app instance).
    Model lookups are not cached.
    """

    def __init__(self, http: httpx.AsyncClient, cache: TTLCache, base_url: str):
        self.http = http
        self.cache = cache
        self.base_url = base_url.rstrip("/")

    @async_retry(max_attempts=3, base_delay=0.5, max_delay=4.0)
    async def _get_results(self, path: str) -> List[Dict]:
        url = f"{self.base_url}/{path}"
        try:
            response = await self.http.get(url, params={"format": "json"})
        except httpx.TransportError as e:
            raise RetryableError(f"NHTSA request failed: {e}") from e

        if response.status_code >= 500 or response.status_code == 429:
            raise RetryableError(f"NHTSA API error: {response.status_code}")
        if response.status_code >= 400:
            raise NonRetryableError(f"NHTSA API error: {response.status_code}")

        try:
            return response.json()["Results"]
        except (ValueError, KeyError) as e:
            raise NonRetryableError(f"Malformed NHTSA response: {e}") from e

    async def _fetch(self, path: str) -> List[Dict]:
        try:
            return await self._get_results(path)
        except (RetryableError, NonRetryableError, asyncio.TimeoutError) as e:
            logger.error(f"NHTSA lookup failed for {path}: {e!r}")
            raise ExternalServiceError(str(e)) from e

    async def get_makes(self) -> List[Dict]:
        """All makes as {'id', 'name'}, sorted by name."""
        cached = self.cache.get()
        if cached is not None:
            return cached

        results = await self._fetch("GetAllMakes")
        makes = sorted(
            ({"id": item["Make_ID"], "name": item["Make_Name"]} for item in results),
            key=lambda make: make["name"].lower(),
        )
        self.cache.set(makes)
        logger.info(f"Cached {len(makes)} NHTSA makes")
        return makes

    async def get_models(self, make: str, year: Optional[int] = None) -> List[Dict]:
        """Models for a make (optionally a model year), deduplicated by name and sorted."""
        if not make or not make.strip():
            raise ValidationError("Make is required.")

        encoded = quote(make.strip(), safe="")
        if year:
            path = f"GetModelsForMakeYear/make/{encoded}/modelyear/{year}"
        else:
            path = f"GetModelsForMake/{encoded}"

        results = await self._fetch(path)

        models: Dict[str, Dict] = {}
        for item in results:
            name = item["Model_Name"]
            if name not in models:
                models[name] = {"id": item["Model_ID"], "name": name}

        return sorted(models.values(), key=lambda model: model["name"].lower())
