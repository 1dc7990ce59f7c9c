import logging
import math
from typing import Any, Dict, Optional

from django.utils import timezone

from route_distances.services.distance_cache_service import DistanceCache
from route_distances.services.query_cache import query_cache
from route_distances.settings import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

logger = logging.getLogger(__name__)


class DistanceQueryService:
    """
    Read-only views over the distance cache.

    Nothing here talks to the routing provider; gaps in the cache simply
    show up as missing rows and in the statistics.
    """

    def __init__(self, distance_cache=None, cache=None):
        self.distance_cache = distance_cache or DistanceCache()
        self.cache = cache or query_cache

    @staticmethod
    def _clamp_page(page, page_size):
        page = max(int(page or 1), 1)
        page_size = int(page_size or DEFAULT_PAGE_SIZE)
        page_size = min(max(page_size, 1), MAX_PAGE_SIZE)
        return page, page_size

    def list(
        self,
        source_filter: Optional[str] = None,
        destination_filter: Optional[str] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE
    ) -> Dict[str, Any]:
        """
        Return one page of cached distances with pagination metadata.

        Returns:
            Dictionary with rows, page, page_size, total, total_pages and has_more.
        """
        page, page_size = self._clamp_page(page, page_size)
        source_filter = (source_filter or '').strip() or None
        destination_filter = (destination_filter or '').strip() or None

        def compute():
            rows, total = self.distance_cache.query(
                source_name_contains=source_filter,
                destination_name_contains=destination_filter,
                page=page,
                page_size=page_size
            )
            total_pages = math.ceil(total / page_size) if total else 0
            return {
                'rows': rows,
                'page': page,
                'page_size': page_size,
                'total': total,
                'total_pages': total_pages,
                'has_more': page < total_pages,
            }

        params = {
            'source': source_filter,
            'destination': destination_filter,
            'page': page,
            'page_size': page_size,
        }
        result = self.cache.get_or_set('list', params, compute)
        logger.debug(f"Distance page {page}: {len(result['rows'])} of {result['total']} rows")
        return result

    def stats(self) -> Dict[str, Any]:
        stats = dict(self.cache.get_or_set('stats', {}, self.distance_cache.stats))
        stats['last_updated'] = timezone.now().isoformat()
        return stats
