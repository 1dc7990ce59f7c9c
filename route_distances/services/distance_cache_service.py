"""
Data-access layer over the Distance table.

Every lookup here is either a single indexed query or a bulk query; callers
never need to loop per pair to find out what is already cached.
"""
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from django.db import IntegrityError, transaction
from django.db.models.functions import Lower

from route_distances.core.exceptions import ConflictError
from route_distances.core.types import DistanceResult
from route_distances.models import Destination, Distance, Source
from route_distances.core.constants import EXPORT_SOURCE_CHUNK_SIZE

logger = logging.getLogger(__name__)


class DistanceCache:
    """Persistent (source, destination) -> Distance mapping."""

    @staticmethod
    def _with_locations(queryset):
        return queryset.select_related('source', 'destination')

    def get(self, source_id: int, destination_id: int) -> Optional[Distance]:
        return self._with_locations(
            Distance.objects.filter(source_id=source_id, destination_id=destination_id)
        ).first()

    def get_many(
        self,
        source_ids: Optional[Iterable[int]] = None,
        destination_ids: Optional[Iterable[int]] = None
    ) -> List[Distance]:
        """
        Fetch every cached Distance in source_ids x destination_ids in one query.

        None on either side means "every id", which keeps whole-row,
        whole-column and full-matrix reads free of huge IN clauses.
        """
        queryset = Distance.objects.all()
        if source_ids is not None:
            source_ids = list(source_ids)
            if not source_ids:
                return []
            queryset = queryset.filter(source_id__in=source_ids)
        if destination_ids is not None:
            destination_ids = list(destination_ids)
            if not destination_ids:
                return []
            queryset = queryset.filter(destination_id__in=destination_ids)
        return list(self._with_locations(queryset))

    def put(self, source_id: int, destination_id: int, result: DistanceResult) -> Distance:
        """
        Insert a new Distance.

        Raises:
            ConflictError: If the pair is already cached.
        """
        try:
            # Savepoint so a duplicate does not poison an enclosing transaction
            with transaction.atomic():
                distance = Distance.objects.create(
                    source_id=source_id,
                    destination_id=destination_id,
                    distance_km=result.distance_km,
                    duration_minutes=result.duration_minutes,
                    route_metadata=result.route_metadata,
                    directions_link=result.directions_link,
                )
        except IntegrityError as e:
            raise ConflictError(source_id, destination_id) from e

        logger.debug(f"Cached distance {source_id} -> {destination_id}: {result.distance_km} km")
        return distance

    def query(
        self,
        source_name_contains: Optional[str] = None,
        destination_name_contains: Optional[str] = None,
        page: int = 1,
        page_size: int = 50
    ) -> Tuple[List[Distance], int]:
        """
        Page through cached distances filtered by joined location names.

        Filters are case-insensitive substring matches on the Source and
        Destination names. Rows are ordered by source name, destination name
        and id so pages are stable.

        Returns:
            Tuple of (rows on the requested page, total matching rows).
        """
        queryset = Distance.objects.all()
        if source_name_contains:
            queryset = queryset.filter(source__name__icontains=source_name_contains)
        if destination_name_contains:
            queryset = queryset.filter(destination__name__icontains=destination_name_contains)

        total = queryset.count()
        offset = (page - 1) * page_size
        rows = list(
            self._with_locations(queryset)
            .order_by(Lower('source__name'), Lower('destination__name'), 'id')[offset:offset + page_size]
        )
        return rows, total

    def stats(self) -> Dict[str, int]:
        source_count = Source.objects.count()
        destination_count = Destination.objects.count()
        cached_pair_count = Distance.objects.count()
        possible_pair_count = source_count * destination_count
        missing_pair_count = max(possible_pair_count - cached_pair_count, 0)
        completion_percentage = (
            round(cached_pair_count / possible_pair_count * 100) if possible_pair_count > 0 else 0
        )

        return {
            'source_count': source_count,
            'destination_count': destination_count,
            'cached_pair_count': cached_pair_count,
            'possible_pair_count': possible_pair_count,
            'missing_pair_count': missing_pair_count,
            'completion_percentage': completion_percentage,
        }

    def matrix(
        self,
        source_ids: List[int],
        destination_ids: List[int],
        chunk_size: int = EXPORT_SOURCE_CHUNK_SIZE
    ) -> Dict[Tuple[int, int], float]:
        """Distance in km keyed by (source_id, destination_id), read in source chunks."""
        distances = {}
        for i in range(0, len(source_ids), chunk_size):
            chunk = source_ids[i:i + chunk_size]
            rows = Distance.objects.filter(
                source_id__in=chunk,
                destination_id__in=destination_ids
            ).values_list('source_id', 'destination_id', 'distance_km')
            for source_id, destination_id, distance_km in rows:
                distances[(source_id, destination_id)] = distance_km
        return distances

    def delete_for_source(self, source_id: int) -> int:
        deleted, _ = Distance.objects.filter(source_id=source_id).delete()
        return deleted

    def delete_for_destination(self, destination_id: int) -> int:
        deleted, _ = Distance.objects.filter(destination_id=destination_id).delete()
        return deleted
