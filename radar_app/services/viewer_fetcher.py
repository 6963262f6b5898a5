"""MRMS product viewer API fetcher (secondary source)"""
from typing import Any, List, Mapping, Optional
import logging

import requests

from radar_app.models.radar import RadarPoint
from radar_app.services.base_fetcher import BaseSourceFetcher
from radar_app.services.decoder import FormatDecoder, fields_from_mapping
from radar_app.services.upstream import DecodeError

logger = logging.getLogger(__name__)


def _product_entries(payload: Any) -> List[Mapping[str, Any]]:
    """Accept either a bare list of products or ``{"products": [...]}``."""
    if isinstance(payload, Mapping):
        payload = payload.get("products", [])
    if not isinstance(payload, list):
        raise DecodeError("parse", f"unexpected product listing type {type(payload).__name__}")
    return [entry for entry in payload if isinstance(entry, Mapping)]


def _product_name(entry: Mapping[str, Any], index: int) -> str:
    for key in ("name", "id", "product"):
        value = entry.get(key)
        if value:
            return str(value)
    return f"product_{index}"


class MRMSViewerFetcher(BaseSourceFetcher):
    """
    Query the MRMS viewer's product listing.

    Products that carry inline sample arrays (``values``, ``latitudes``,
    ``longitudes``) go through the same thinning and classification as a
    decoded grid. Listing-only products contribute nothing, so an empty
    result is normal when no product has samples attached.
    """

    name = "mrms_viewer"
    label = "MRMS_VIEWER"

    def __init__(
        self,
        viewer_url: str,
        decoder: Optional[FormatDecoder] = None,
        timeout: float = 10,
        session: Optional[requests.Session] = None,
        user_agent: str = "RadarApp/1.0",
    ):
        super().__init__(session=session, user_agent=user_agent)
        self.products_url = f"{viewer_url.rstrip('/')}/api/products"
        self.decoder = decoder or FormatDecoder()
        self.timeout = timeout

    def fetch_points(self) -> List[RadarPoint]:
        logger.info(f"Querying MRMS viewer products: {self.products_url}")
        payload = self._get_json(self.products_url, timeout=self.timeout)
        entries = _product_entries(payload)

        document = {_product_name(entry, i): entry for i, entry in enumerate(entries)}
        fields = fields_from_mapping(document)
        logger.info(f"  {len(entries)} products listed, {len(fields)} with inline samples")

        return self.decoder.points_from_fields(fields)
