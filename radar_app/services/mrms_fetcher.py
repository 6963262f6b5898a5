"""MRMS NCEP directory fetcher (primary, authoritative source)"""
from typing import List, Optional
from urllib.parse import urljoin
import logging
import re

import requests

from radar_app.models.radar import RadarPoint
from radar_app.services.base_fetcher import BaseSourceFetcher
from radar_app.services.decoder import FormatDecoder
from radar_app.services.upstream import ListingParseError

logger = logging.getLogger(__name__)

# Checked in order; a file matched by an earlier pattern keeps its place
GRID_FILE_PATTERNS = (
    re.compile(r'href="([^"]*\.grib2\.gz[^"]*)"'),
    re.compile(r'href="([^"]*\.grib2[^"]*)"'),
    re.compile(r'href="([^"]*\.grib[^"]*)"'),
    re.compile(r'href="([^"]*\.grb[^"]*)"'),
)

LISTING_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


def find_grid_files(html: str) -> List[str]:
    """
    Collect candidate grid file hrefs from a directory listing.

    Raises:
        ListingParseError: the listing links to no grid files at all
    """
    files: List[str] = []
    seen = set()
    for pattern in GRID_FILE_PATTERNS:
        for match in pattern.finditer(html):
            href = match.group(1)
            if href not in seen:
                seen.add(href)
                files.append(href)
    if not files:
        raise ListingParseError("directory listing contains no .grib2.gz/.grib2/.grib/.grb files")
    return files


def select_latest_file(files: List[str]) -> str:
    """Prefer the file MRMS publishes as "latest", else the first listed."""
    for name in files:
        if "latest" in name:
            return name
    return files[0]


class MRMSDirectoryFetcher(BaseSourceFetcher):
    """Fetch the newest MRMS grid from the NCEP HTTP directory listing"""

    name = "mrms_ncep"
    label = "MRMS_NCEP"

    def __init__(
        self,
        base_url: str,
        product: str,
        decoder: Optional[FormatDecoder] = None,
        listing_timeout: float = 15,
        download_timeout: float = 30,
        session: Optional[requests.Session] = None,
        user_agent: str = "RadarApp/1.0",
    ):
        super().__init__(session=session, user_agent=user_agent)
        self.product = product
        self.listing_url = f"{base_url.rstrip('/')}/2D/{product}/"
        self.decoder = decoder or FormatDecoder()
        self.listing_timeout = listing_timeout
        self.download_timeout = download_timeout

    def fetch_points(self) -> List[RadarPoint]:
        logger.info(f"Listing MRMS directory: {self.listing_url}")
        response = self._get(self.listing_url, timeout=self.listing_timeout, accept=LISTING_ACCEPT)

        try:
            files = find_grid_files(response.text)
        except ListingParseError as e:
            # An empty listing is not a failure; the chain just moves on
            logger.info(f"  {e}")
            return []

        logger.info(f"  Found {len(files)} candidate grid files")
        filename = select_latest_file(files)
        return self._download_and_decode(filename)

    def _download_and_decode(self, filename: str) -> List[RadarPoint]:
        file_url = urljoin(self.listing_url, filename)
        logger.info(f"  Downloading {file_url}")
        response = self._get(file_url, timeout=self.download_timeout)
        payload = response.content
        logger.info(f"  Downloaded {len(payload) / 1024:.1f} KB")

        points = self.decoder.decode(payload, field_hint=self.product)
        logger.info(f"  Decoded {len(points)} radar points from {filename}")
        return points
