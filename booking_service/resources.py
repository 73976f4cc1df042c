"""
Read-only lookups of bookable resources (homestays and guides).

Two registries share the same two-method interface:

* ``SqlResourceRegistry`` reads the ``homestays`` and ``guides`` tables of the
  booking database.
* ``HttpResourceRegistry`` asks the marketplace listing API, whose responses
  use the ``{"success": true, "data": {...}}`` envelope.
"""
import logging
from typing import Protocol

import httpx
from sqlalchemy.orm import Session

from . import models
from .errors import Unavailable
from .models import GuideRef, HomestayRef, ResourceRef

logger = logging.getLogger("booking_service")


class ResourceRegistry(Protocol):
    def exists(self, resource: ResourceRef) -> bool: ...

    def title_of(self, resource: ResourceRef) -> str | None: ...


class SqlResourceRegistry:
    def __init__(self, db: Session):
        self.db = db

    def exists(self, resource: ResourceRef) -> bool:
        return self._find(resource) is not None

    def title_of(self, resource: ResourceRef) -> str | None:
        match self._find(resource):
            case models.Homestay(title=title):
                return title
            case models.Guide(name=name):
                return name
            case _:
                return None

    def _find(self, resource: ResourceRef):
        match resource:
            case HomestayRef(id=resource_id):
                return self.db.get(models.Homestay, resource_id)
            case GuideRef(id=resource_id):
                return self.db.get(models.Guide, resource_id)


class HttpResourceRegistry:
    def __init__(self, base_url: str, timeout: float = 5.0, client: httpx.Client | None = None):
        self.client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self._cache: dict[ResourceRef, dict | None] = {}

    def exists(self, resource: ResourceRef) -> bool:
        return self._fetch(resource) is not None

    def title_of(self, resource: ResourceRef) -> str | None:
        data = self._fetch(resource)
        if data is None:
            return None
        match resource:
            case HomestayRef():
                return data.get("title")
            case GuideRef():
                return data.get("name")

    def close(self):
        self.client.close()

    def _fetch(self, resource: ResourceRef) -> dict | None:
        if resource in self._cache:
            return self._cache[resource]

        match resource:
            case HomestayRef(id=resource_id):
                path = f"/homestays/{resource_id}"
            case GuideRef(id=resource_id):
                path = f"/guides/{resource_id}"

        try:
            response = self.client.get(path)
        except httpx.HTTPError as e:
            logger.error(f"Listing service request {path} failed: {e}")
            raise Unavailable("Listing service is unavailable.") from e

        if response.status_code == httpx.codes.NOT_FOUND:
            data = None
        elif response.is_success:
            try:
                body = response.json()
            except ValueError as e:
                logger.error(f"Listing service sent a non-JSON body for {path}: {e}")
                raise Unavailable("Listing service is unavailable.") from e
            data = body.get("data", body) if isinstance(body, dict) else None
        else:
            logger.error(f"Listing service answered {response.status_code} for {path}")
            raise Unavailable("Listing service is unavailable.")

        self._cache[resource] = data
        return data
