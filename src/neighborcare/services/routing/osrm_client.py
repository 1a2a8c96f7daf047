"""HTTP client for the OSRM route service."""

from __future__ import annotations

import logging
import time

import httpx

from ...config import settings

logger = logging.getLogger(__name__)


class OSRMClient:
    def __init__(
        self,
        base_url: str | None = None,
        profile: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
    ) -> None:
        self.base_url = base_url or settings.osrm_base_url
        if not self.base_url:
            raise ValueError("OSRM base URL is not configured.")
        self.profile = profile or settings.osrm_profile
        self.timeout = timeout if timeout is not None else settings.osrm_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.osrm_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.osrm_backoff_seconds

    def _get_client(self) -> httpx.Client:
        # One client per call; route recomputes run on several worker threads.
        return httpx.Client(timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 5.0)))

    def route(self, start_lng: float, start_lat: float, end_lng: float, end_lat: float) -> dict:
        """Get a drivable route between two points.

        Returns:
            Dictionary with ``coordinates`` (list of ``[lng, lat]`` pairs in path
            order), ``distance_meters`` and ``duration_seconds``.

        Raises:
            ConnectionError: the service could not be reached after retries.
            httpx.HTTPError: the service kept answering with an HTTP error.
            ValueError: the response was not a usable route.
        """
        coordinate_str = f"{start_lng},{start_lat};{end_lng},{end_lat}"
        params = {
            "overview": "full",
            "geometries": "polyline",
            "steps": "false",
        }
        url = f"{self.base_url}/route/v1/{self.profile}/{coordinate_str}"

        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(url, params=params)
                    response.raise_for_status()
                    return _parse_route_payload(response.json())
                except httpx.HTTPStatusError as e:
                    attempt += 1
                    # 4xx other than rate limiting will not change on retry.
                    if attempt > self.max_retries or (
                        400 <= e.response.status_code < 500 and e.response.status_code != 429
                    ):
                        raise
                    time.sleep(self.backoff_seconds * attempt)
                except httpx.TimeoutException as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        logger.warning(f"OSRM route request timed out after {self.max_retries} retries: {e}")
                        raise ConnectionError(f"OSRM route request to {self.base_url} timed out") from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"OSRM route timeout, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries})")
                    time.sleep(wait_time)
                except (httpx.NetworkError, OSError) as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise ConnectionError(
                            f"Failed to connect to OSRM service at {self.base_url}: {e}"
                        ) from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"OSRM network error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {e}")
                    time.sleep(wait_time)
        finally:
            client.close()


def _parse_route_payload(data: dict) -> dict:
    if not isinstance(data, dict) or data.get("code") != "Ok":
        message = data.get("message", "Unknown OSRM route error") if isinstance(data, dict) else "non-object body"
        raise ValueError(f"OSRM route request failed: {message}")
    routes = data.get("routes") or []
    if not routes:
        raise ValueError("OSRM route response contained no routes.")
    best = routes[0]
    try:
        geometry = decode_polyline(best["geometry"])
        distance = float(best["distance"])
        duration = float(best["duration"])
    except (KeyError, TypeError, IndexError) as e:
        raise ValueError(f"Malformed OSRM route response: {e}") from e
    return {
        "coordinates": [[lon, lat] for lat, lon in geometry],
        "distance_meters": distance,
        "duration_seconds": duration,
    }


def decode_polyline(polyline: str) -> list[tuple[float, float]]:
    """Decode Google polyline string to list of (lat, lon) coordinates.

    OSRM uses Google's polyline encoding format (precision 5) for route geometry.
    """
    coordinates = []
    index = 0
    lat = 0
    lon = 0

    while index < len(polyline):
        values = []
        for _ in range(2):
            shift = 0
            result = 0
            while True:
                b = ord(polyline[index]) - 63
                index += 1
                result |= (b & 0x1f) << shift
                shift += 5
                if b < 0x20:
                    break
            values.append(~(result >> 1) if (result & 1) else (result >> 1))
        lat += values[0]
        lon += values[1]
        coordinates.append((lat / 1e5, lon / 1e5))

    return coordinates


def check_health(base_url: str | None = None) -> bool:
    """Check OSRM service health with a minimal route request."""
    base = (base_url or settings.osrm_base_url or "").rstrip("/")
    if not base:
        return False
    try:
        # Two points in central Bengaluru; any routable pair works.
        url = f"{base}/route/v1/{settings.osrm_profile}/77.5946,12.9716;77.5950,12.9720"
        response = httpx.get(url, params={"overview": "false"}, timeout=5.0)
        response.raise_for_status()
        return response.json().get("code") == "Ok"
    except (httpx.HTTPError, ValueError):
        return False
