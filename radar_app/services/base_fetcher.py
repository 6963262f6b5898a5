"""Base class for all radar source fetchers"""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional
import logging

import requests

from radar_app.models.radar import CONUS_BOUNDS, RadarPoint
from radar_app.services.upstream import DecodeError, NetworkError

logger = logging.getLogger(__name__)


class BaseSourceFetcher(ABC):
    """
    Abstract base class for radar source strategies.

    ``fetch()`` either returns points (possibly none) or raises a
    ``SourceError``; it never retries. Subclasses implement
    ``fetch_points()``; the base drops anything outside the continental
    bounds so every strategy honours the same geographic contract.
    """

    #: Short identifier used in logs and as the snapshot source label
    name: str = "source"
    label: str = "SOURCE"

    def __init__(self, session: Optional[requests.Session] = None, user_agent: str = "RadarApp/1.0"):
        self._session = session
        self.user_agent = user_agent

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    @abstractmethod
    def fetch_points(self) -> List[RadarPoint]:
        """
        Fetch and normalize points from this source.
        Must be implemented by each strategy.
        """
        pass

    def fetch(self) -> List[RadarPoint]:
        points = self.fetch_points()
        in_bounds = CONUS_BOUNDS.filter(points)
        dropped = len(points) - len(in_bounds)
        if dropped:
            logger.debug(f"{self.name}: dropped {dropped} points outside continental bounds")
        return in_bounds

    def _headers(self, accept: str) -> Dict[str, str]:
        return {
            "User-Agent": self.user_agent,
            "Accept": accept,
        }

    def _get(
        self,
        url: str,
        *,
        timeout: float,
        accept: str = "*/*",
        headers: Optional[Dict[str, str]] = None,
        session: Optional[requests.Session] = None,
    ) -> requests.Response:
        """GET ``url``; any connection error, timeout or non-2xx becomes NetworkError."""
        request_headers = self._headers(accept)
        if headers:
            request_headers.update(headers)
        try:
            http = session if session is not None else self.session
            response = http.get(url, headers=request_headers, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise NetworkError(f"GET {url} failed: {exc}", url=url) from exc
        logger.debug(f"GET {url} -> {response.status_code} ({len(response.content)} bytes)")
        return response

    def _get_json(
        self,
        url: str,
        *,
        timeout: float,
        accept: str = "application/json",
        session: Optional[requests.Session] = None,
    ):
        response = self._get(url, timeout=timeout, accept=accept, session=session)
        try:
            return response.json()
        except ValueError as exc:
            raise DecodeError("parse", f"GET {url} returned invalid JSON: {exc}") from exc
