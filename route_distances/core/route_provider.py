"""
Google Maps adapter for driving distances and geocoding.

This module wraps the three provider capabilities the distance cache needs:
single pair distances (Routes API), many-to-many matrices chunked to the
legacy Distance Matrix API limits, and geocoding with a fallback chain of
increasingly less specific queries.
"""
from typing import Any, Callable, Dict, List, Optional, Sequence
import logging
import math
import time

import requests

from route_distances.core.constants import (
    DISTANCE_DECIMALS,
    ELEMENT_OK,
    METERS_PER_KILOMETER,
    ROUTE_EXISTS,
    ROUTES_FIELD_MASK,
    SECONDS_PER_MINUTE,
    STATUS_OK,
    STATUS_OVER_QUERY_LIMIT,
    STATUS_ZERO_RESULTS,
    TRAVEL_MODE,
)
from route_distances.core.exceptions import ProviderError, ProviderNotConfigured
from route_distances.core.types import UNCOMPUTED, DistanceResult, KnownLocation
from route_distances.settings import (
    BACKOFF_FACTOR,
    CHUNK_DELAY_SECONDS,
    GEOCODE_REGION_BIAS,
    GEOCODE_REGION_NAME,
    GOOGLE_DIRECTIONS_BASE_URL,
    GOOGLE_DISTANCE_MATRIX_URL,
    GOOGLE_GEOCODE_URL,
    GOOGLE_MAPS_API_KEY,
    GOOGLE_ROUTES_MATRIX_URL,
    MAX_DESTINATIONS_PER_REQUEST,
    MAX_ORIGINS_PER_REQUEST,
    MAX_RETRIES,
    REQUEST_TIMEOUT_SECONDS,
    RETRY_DELAY_SECONDS,
)

logger = logging.getLogger(__name__)

DistanceMatrix = List[List[Any]]


class GoogleRouteProvider:
    """
    Stateless client for the Google routing and geocoding services.

    Pacing between successive single-pair calls is left to the caller; only
    the sub-requests of one batch are spaced out here.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        chunk_delay: Optional[float] = None,
        max_origins: Optional[int] = None,
        max_destinations: Optional[int] = None,
        region_name: Optional[str] = None,
        region_bias: Optional[str] = None,
    ):
        self.api_key = GOOGLE_MAPS_API_KEY if api_key is None else api_key
        self.chunk_delay = CHUNK_DELAY_SECONDS if chunk_delay is None else chunk_delay
        self.max_origins = max_origins or MAX_ORIGINS_PER_REQUEST
        self.max_destinations = max_destinations or MAX_DESTINATIONS_PER_REQUEST
        self.region_name = region_name or GEOCODE_REGION_NAME
        self.region_bias = region_bias or GEOCODE_REGION_BIAS

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def ensure_configured(self) -> None:
        if not self.is_configured:
            raise ProviderNotConfigured()

    @staticmethod
    def directions_url(origin: KnownLocation, destination: KnownLocation) -> str:
        """Google Maps navigation link between two coordinates."""
        return f"{GOOGLE_DIRECTIONS_BASE_URL}{origin.as_param()}/{destination.as_param()}"

    @staticmethod
    def _to_kilometers(meters: float) -> float:
        return round(meters / METERS_PER_KILOMETER, DISTANCE_DECIMALS)

    @staticmethod
    def _to_minutes(seconds: float) -> int:
        # Half-up rounding to the nearest minute
        return int(math.floor(seconds / SECONDS_PER_MINUTE + 0.5))

    @staticmethod
    def _parse_duration(duration: Any) -> float:
        """Routes API durations are strings like "160s"."""
        if isinstance(duration, (int, float)):
            return float(duration)
        return float(str(duration).rstrip('s'))

    # ------------------------------------------------------------------
    # Single pair
    # ------------------------------------------------------------------

    def compute_one(
        self,
        origin: KnownLocation,
        destination: KnownLocation
    ) -> Optional[DistanceResult]:
        """
        Compute the driving distance for one pair with the Routes API.

        Args:
            origin: Source coordinates.
            destination: Destination coordinates.

        Returns:
            DistanceResult, or None when the provider reports no viable route.

        Raises:
            ProviderNotConfigured: If no API key is set.
            ProviderError: On transport, HTTP or authentication failures.
        """
        self.ensure_configured()
        logger.debug(f"Calculating distance from {origin.as_param()} to {destination.as_param()}")

        body = {
            'origins': [self._waypoint(origin)],
            'destinations': [self._waypoint(destination)],
            'travelMode': TRAVEL_MODE,
        }
        headers = {
            'Content-Type': 'application/json',
            'X-Goog-Api-Key': self.api_key,
            'X-Goog-FieldMask': ROUTES_FIELD_MASK,
        }

        try:
            response = requests.post(
                GOOGLE_ROUTES_MATRIX_URL,
                json=body,
                headers=headers,
                timeout=REQUEST_TIMEOUT_SECONDS
            )
            response.raise_for_status()
            routes = response.json()
        except requests.RequestException as e:
            status = getattr(getattr(e, 'response', None), 'status_code', None)
            raise ProviderError(f"Routes API request failed: {e}", status=status) from e
        except ValueError as e:
            raise ProviderError(f"Routes API returned invalid JSON: {e}") from e

        return self._process_route_response(routes, origin, destination)

    @staticmethod
    def _waypoint(location: KnownLocation) -> Dict[str, Any]:
        return {
            'waypoint': {
                'location': {
                    'latLng': {
                        'latitude': location.latitude,
                        'longitude': location.longitude
                    }
                }
            }
        }

    @classmethod
    def _process_route_response(
        cls,
        routes: Any,
        origin: KnownLocation,
        destination: KnownLocation
    ) -> Optional[DistanceResult]:
        if not routes or not isinstance(routes, list):
            logger.info("No routes in Routes API response")
            return None

        route = routes[0]
        if (route.get('condition') != ROUTE_EXISTS
                or route.get('distanceMeters') is None
                or route.get('duration') is None):
            logger.info(f"No route from {origin.as_param()} to {destination.as_param()}: "
                        f"condition={route.get('condition')}")
            return None

        return DistanceResult(
            distance_km=cls._to_kilometers(route['distanceMeters']),
            duration_minutes=cls._to_minutes(cls._parse_duration(route['duration'])),
            route_metadata=route,
            directions_link=cls.directions_url(origin, destination)
        )

    # ------------------------------------------------------------------
    # Many-to-many
    # ------------------------------------------------------------------

    def compute_batch(
        self,
        origins: Sequence[KnownLocation],
        destinations: Sequence[KnownLocation],
        should_stop: Optional[Callable[[], bool]] = None
    ) -> DistanceMatrix:
        """
        Compute a distance matrix, one row per origin, in input order.

        Origins and destinations are split into chunks that respect the
        per-request limits of the Distance Matrix API. A cell is a
        DistanceResult, None when the provider reports no route, or
        UNCOMPUTED when its chunk failed or was never sent. The call only
        raises when every chunk it sent failed.

        Args:
            origins: Source coordinates.
            destinations: Destination coordinates.
            should_stop: Checked before each chunk; once it returns True the
                remaining chunks are skipped.

        Raises:
            ProviderNotConfigured: If no API key is set.
            ProviderError: If no chunk could be fetched at all.
        """
        self.ensure_configured()
        matrix: DistanceMatrix = [[UNCOMPUTED] * len(destinations) for _ in origins]
        if not origins or not destinations:
            return matrix

        chunks = [
            (i, j)
            for i in range(0, len(origins), self.max_origins)
            for j in range(0, len(destinations), self.max_destinations)
        ]
        chunks_sent = 0
        chunks_failed = 0
        last_error = None

        for i, j in chunks:
            if should_stop is not None and should_stop():
                logger.info(f"Stopping distance matrix after {chunks_sent} of {len(chunks)} requests")
                break

            origin_batch = origins[i:i + self.max_origins]
            destination_batch = destinations[j:j + self.max_destinations]

            if chunks_sent and self.chunk_delay:
                time.sleep(self.chunk_delay)
            chunks_sent += 1

            try:
                response = self._send_matrix_request(origin_batch, destination_batch)
            except ProviderError as e:
                chunks_failed += 1
                last_error = e
                logger.warning(f"Distance matrix chunk origins[{i}:{i + len(origin_batch)}] x "
                               f"destinations[{j}:{j + len(destination_batch)}] failed: {e}")
                continue

            rows = self._process_matrix_response(response, origin_batch, destination_batch)
            for k, row in enumerate(rows):
                for col, cell in enumerate(row):
                    matrix[i + k][j + col] = cell

        if chunks_sent and chunks_failed == chunks_sent:
            raise ProviderError(
                f"All {chunks_sent} distance matrix requests failed: {last_error}",
                status=getattr(last_error, 'status', None)
            )

        return matrix

    def _send_matrix_request(
        self,
        origin_batch: Sequence[KnownLocation],
        destination_batch: Sequence[KnownLocation]
    ) -> Dict[str, Any]:
        params = {
            'origins': '|'.join(o.as_param() for o in origin_batch),
            'destinations': '|'.join(d.as_param() for d in destination_batch),
            'mode': 'driving',
            'units': 'metric',
            'key': self.api_key,
        }
        return self._send_request_with_retry(GOOGLE_DISTANCE_MATRIX_URL, params)

    @classmethod
    def _process_matrix_response(
        cls,
        response: Dict[str, Any],
        origin_batch: Sequence[KnownLocation],
        destination_batch: Sequence[KnownLocation]
    ) -> DistanceMatrix:
        """
        Convert a Distance Matrix API response into DistanceResult rows.

        Elements whose status is not OK become None. Rows or elements the
        response omits stay UNCOMPUTED so the chunk keeps its shape.
        """
        rows: DistanceMatrix = [[UNCOMPUTED] * len(destination_batch) for _ in origin_batch]

        for k, row in enumerate(response.get('rows', [])[:len(origin_batch)]):
            for col, element in enumerate(row.get('elements', [])[:len(destination_batch)]):
                if element.get('status') == ELEMENT_OK:
                    rows[k][col] = DistanceResult(
                        distance_km=cls._to_kilometers(element.get('distance', {}).get('value', 0)),
                        duration_minutes=cls._to_minutes(element.get('duration', {}).get('value', 0)),
                        route_metadata=element,
                        directions_link=cls.directions_url(origin_batch[k], destination_batch[col])
                    )
                else:
                    rows[k][col] = None
                    logger.warning(f"Destination unreachable: {element.get('status')}")

        return rows

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _send_request_with_retry(
        self,
        url: str,
        params: Dict[str, Any],
        accepted_statuses=(STATUS_OK,)
    ) -> Dict[str, Any]:
        """Sends a GET request with retry logic using exponential backoff."""
        retry_count = 0
        delay = RETRY_DELAY_SECONDS

        while retry_count < MAX_RETRIES:
            try:
                response = self._send_request(url, params)
            except (requests.RequestException, ValueError) as e:
                logger.warning(f"Request failed: {str(e)}")
                retry_count += 1

                if retry_count < MAX_RETRIES:
                    sleep_time = delay * (BACKOFF_FACTOR ** (retry_count - 1))
                    logger.info(f"Retrying in {sleep_time} seconds")
                    time.sleep(sleep_time)
                    continue

                logger.error("Max retries reached")
                raise ProviderError(f"Request to {url} failed: {e}") from e

            status = response.get('status')
            if status in accepted_statuses:
                return response

            error_message = response.get('error_message', 'Unknown API error')
            logger.warning(f"API error: {status} {error_message}")

            # If OVER_QUERY_LIMIT, use backoff strategy
            if status == STATUS_OVER_QUERY_LIMIT:
                retry_count += 1
                if retry_count < MAX_RETRIES:
                    sleep_time = delay * (BACKOFF_FACTOR ** (retry_count - 1))
                    logger.info(f"Rate limit exceeded, retrying in {sleep_time} seconds")
                    time.sleep(sleep_time)
                continue

            raise ProviderError(f"Google Maps API error: {error_message}", status=status)

        raise ProviderError("All API request retries failed", status=STATUS_OVER_QUERY_LIMIT)

    @staticmethod
    def _send_request(url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        response = requests.get(url, params=params, timeout=REQUEST_TIMEOUT_SECONDS)
        response.raise_for_status()
        return response.json()

    # ------------------------------------------------------------------
    # Geocoding
    # ------------------------------------------------------------------

    def geocode_query(self, query: str) -> Optional[KnownLocation]:
        """Geocode one free-text query, returning the best match or None."""
        self.ensure_configured()
        params = {
            'address': query,
            'key': self.api_key,
            'region': self.region_bias,
        }
        response = self._send_request_with_retry(
            GOOGLE_GEOCODE_URL,
            params,
            accepted_statuses=(STATUS_OK, STATUS_ZERO_RESULTS)
        )

        results = response.get('results') or []
        if not results:
            return None

        location = results[0]['geometry']['location']
        return KnownLocation(latitude=location['lat'], longitude=location['lng'])

    def geocode_queries(
        self,
        name: str,
        pincode: Optional[str] = None,
        address: Optional[str] = None
    ) -> List[str]:
        """
        Build the fallback queries, most specific first.

        More qualifiers mean fewer false-positive matches, so the chain
        degrades from the full address down to the bare name.
        """
        region = self.region_name
        queries = []
        if pincode and address:
            queries.append(f"{name}, {address}, {pincode}, {region}")
        if pincode:
            queries.append(f"{name}, {pincode}, {region}")
            queries.append(f"{pincode}, {region}")
        if address:
            queries.append(f"{name}, {address}, {region}")
        queries.append(f"{name}, {region}")
        return queries

    def geocode(
        self,
        name: str,
        pincode: Optional[str] = None,
        address: Optional[str] = None
    ) -> Optional[KnownLocation]:
        """
        Resolve coordinates for a named place using the fallback chain.

        Returns the first strategy that yields a result, or None when every
        strategy comes back empty. A provider failure on one strategy moves
        on to the next; if every strategy failed the last error is raised.
        """
        self.ensure_configured()
        queries = self.geocode_queries(name, pincode, address)
        last_error = None
        failures = 0

        for index, query in enumerate(queries, start=1):
            logger.debug(f"Geocoding strategy {index}: {query}")
            try:
                location = self.geocode_query(query)
            except ProviderError as e:
                failures += 1
                last_error = e
                logger.warning(f"Geocoding strategy {index} failed for \"{name}\": {e}")
                continue
            if location:
                logger.info(f"Geocoded \"{name}\" with strategy {index}: "
                            f"{location.latitude}, {location.longitude}")
                return location

        if failures == len(queries):
            raise last_error

        logger.info(f"All geocoding strategies failed for \"{name}\"")
        return None
