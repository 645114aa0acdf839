import logging

import httpx

from .config import CATALOG_SERVICE_URL, CATALOG_TIMEOUT
from .errors import CatalogUnavailableError
from .schemas import ServiceInfo, StoreInfo

logger = logging.getLogger(__name__)


async def _get_json(path: str) -> dict | None:
    url = f"{CATALOG_SERVICE_URL}{path}"
    try:
        async with httpx.AsyncClient(timeout=CATALOG_TIMEOUT) as client:
            r = await client.get(url)
            if r.status_code == 404:
                return None
            r.raise_for_status()
            return r.json()
    except httpx.HTTPError as e:
        logger.warning("catalog lookup failed for %s: %s", url, e)
        raise CatalogUnavailableError() from e


async def fetch_store(store_id: str) -> StoreInfo | None:
    data = await _get_json(f"/stores/{store_id}")
    if data is None:
        return None
    return StoreInfo.model_validate(data)


async def fetch_service(service_id: str) -> ServiceInfo | None:
    data = await _get_json(f"/services/{service_id}")
    if data is None:
        return None
    return ServiceInfo.model_validate(data)
