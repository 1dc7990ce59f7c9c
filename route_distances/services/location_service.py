import logging
import time
from typing import Any, Dict, Optional, Tuple

from django.db import IntegrityError, transaction
from django.db.models import Q

from route_distances.core.exceptions import DuplicatePincode, ProviderError, ScopeNotFound
from route_distances.core.route_provider import GoogleRouteProvider
from route_distances.core.types import KnownLocation
from route_distances.models import Destination, Source
from route_distances.services.distance_cache_service import DistanceCache
from route_distances.services.query_cache import query_cache
from route_distances.settings import PROVIDER_CALL_DELAY_SECONDS

logger = logging.getLogger(__name__)

SOURCE_FIELDS = ('name', 'latitude', 'longitude', 'address')
DESTINATION_FIELDS = ('name', 'pincode', 'address', 'latitude', 'longitude')


def _clean(value):
    """Blank strings are stored as NULL."""
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


class LocationService:
    """
    Registration, editing and deletion of Sources and Destinations.

    Deletions remove the dependent cached distances in the same transaction
    and report how many went away.
    """

    def __init__(self, provider=None, distance_cache=None, cache=None, call_delay=None):
        self.provider = provider or GoogleRouteProvider()
        self.distance_cache = distance_cache or DistanceCache()
        self.cache = cache or query_cache
        self.call_delay = PROVIDER_CALL_DELAY_SECONDS if call_delay is None else call_delay

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    @staticmethod
    def list_sources():
        return Source.objects.order_by('name', 'id')

    @staticmethod
    def get_source(source_id: int) -> Source:
        try:
            return Source.objects.get(pk=source_id)
        except Source.DoesNotExist:
            raise ScopeNotFound(f"Source {source_id} not found")

    def create_source(self, name: str, latitude: float, longitude: float,
                      address: Optional[str] = None) -> Source:
        source = Source.objects.create(
            name=name.strip(),
            latitude=latitude,
            longitude=longitude,
            address=_clean(address)
        )
        self.cache.invalidate()
        logger.info(f"Registered source \"{source.name}\" ({source.id})")
        return source

    def update_source(self, source_id: int, **changes: Any) -> Source:
        source = self.get_source(source_id)
        for field in SOURCE_FIELDS:
            if field in changes:
                setattr(source, field, _clean(changes[field]))
        source.save()
        self.cache.invalidate()
        return source

    def delete_source(self, source_id: int) -> Tuple[str, int]:
        """
        Delete a source and its cached distances atomically.

        Returns:
            Tuple of (source name, number of distances deleted).
        """
        with transaction.atomic():
            source = self.get_source(source_id)
            deleted = self.distance_cache.delete_for_source(source.id)
            source.delete()

        self.cache.invalidate()
        logger.info(f"Deleted source \"{source.name}\" and {deleted} related distances")
        return source.name, deleted

    # ------------------------------------------------------------------
    # Destinations
    # ------------------------------------------------------------------

    @staticmethod
    def list_destinations():
        return Destination.objects.order_by('name', 'id')

    @staticmethod
    def get_destination(destination_id: int) -> Destination:
        try:
            return Destination.objects.get(pk=destination_id)
        except Destination.DoesNotExist:
            raise ScopeNotFound(f"Destination {destination_id} not found")

    @staticmethod
    def _check_pincode(pincode: Optional[str], exclude_id: Optional[int] = None) -> None:
        if not pincode:
            return
        existing = Destination.objects.filter(pincode=pincode)
        if exclude_id is not None:
            existing = existing.exclude(pk=exclude_id)
        existing = existing.first()
        if existing:
            raise DuplicatePincode(existing)

    def create_destination(
        self,
        name: str,
        pincode: Optional[str] = None,
        address: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None
    ) -> Destination:
        """
        Register a destination, geocoding it when coordinates are not given.

        A failed geocode leaves the coordinates empty; they can be backfilled
        later or resolved on demand by a completion run.

        Raises:
            DuplicatePincode: If another destination already has the pincode.
        """
        name = name.strip()
        pincode = _clean(pincode)
        address = _clean(address)
        self._check_pincode(pincode)

        if (latitude is None or longitude is None) and self.provider.is_configured:
            try:
                location = self.provider.geocode(name, pincode, address)
            except ProviderError as e:
                logger.warning(f"Geocoding failed for new destination \"{name}\": {e}")
                location = None
            if location:
                latitude, longitude = location.latitude, location.longitude

        try:
            with transaction.atomic():
                destination = Destination.objects.create(
                    name=name,
                    pincode=pincode,
                    address=address,
                    latitude=latitude,
                    longitude=longitude
                )
        except IntegrityError:
            # Lost a race with a concurrent insert of the same pincode
            raise DuplicatePincode(Destination.objects.get(pincode=pincode))

        self.cache.invalidate()
        logger.info(f"Registered destination \"{destination.name}\" ({destination.id})")
        return destination

    def update_destination(self, destination_id: int, **changes: Any) -> Destination:
        destination = self.get_destination(destination_id)
        if 'pincode' in changes:
            self._check_pincode(_clean(changes['pincode']), exclude_id=destination.id)
        for field in DESTINATION_FIELDS:
            if field in changes:
                setattr(destination, field, _clean(changes[field]))
        destination.save()
        self.cache.invalidate()
        return destination

    def delete_destination(self, destination_id: int) -> Tuple[str, int]:
        """
        Delete a destination and its cached distances atomically.

        Returns:
            Tuple of (destination name, number of distances deleted).
        """
        with transaction.atomic():
            destination = self.get_destination(destination_id)
            deleted = self.distance_cache.delete_for_destination(destination.id)
            destination.delete()

        self.cache.invalidate()
        logger.info(f"Deleted destination \"{destination.name}\" and {deleted} related distances")
        return destination.name, deleted

    # ------------------------------------------------------------------
    # Geocoding
    # ------------------------------------------------------------------

    def geocode_destination(self, destination: Destination) -> Optional[KnownLocation]:
        """
        Resolve and persist coordinates for a destination.

        Returns:
            The resolved location, or None when every strategy failed.

        Raises:
            ProviderNotConfigured: If no API key is set.
            ProviderError: If the provider failed on every strategy.
        """
        logger.info(f"Attempting to geocode destination \"{destination.name}\"")
        location = self.provider.geocode(destination.name, destination.pincode, destination.address)
        if not location:
            logger.warning(f"Failed to geocode destination: {destination.name}")
            return None

        destination.latitude = location.latitude
        destination.longitude = location.longitude
        destination.save(update_fields=['latitude', 'longitude', 'updated_at'])
        self.cache.invalidate()
        return location

    def backfill_coordinates(self) -> Dict[str, int]:
        """Geocode every destination that still lacks coordinates."""
        self.provider.ensure_configured()
        pending = list(
            Destination.objects.filter(Q(latitude__isnull=True) | Q(longitude__isnull=True))
        )

        updated = 0
        for index, destination in enumerate(pending):
            if index and self.call_delay:
                time.sleep(self.call_delay)
            try:
                if self.geocode_destination(destination):
                    updated += 1
            except ProviderError as e:
                logger.warning(f"Geocoding \"{destination.name}\" failed: {e}")

        logger.info(f"Updated coordinates for {updated} of {len(pending)} destinations")
        return {'updated': updated, 'total': len(pending)}
