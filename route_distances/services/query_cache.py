import hashlib
import json
import logging

from django.core.cache import cache

from route_distances.settings import QUERY_CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)

GENERATION_KEY = 'route_distances:query:generation'


class QueryCache:
    """
    TTL cache for read-path results with explicit invalidation.

    Entries are namespaced by a generation counter; invalidate() bumps the
    counter so every entry written before it becomes unreachable and ages
    out through the TTL. Size is bounded by the cache backend (MAX_ENTRIES).
    """

    def __init__(self, backend=None, ttl=None):
        self.backend = backend or cache
        self.ttl = QUERY_CACHE_TTL_SECONDS if ttl is None else ttl

    def _generation(self):
        generation = self.backend.get(GENERATION_KEY)
        if generation is None:
            generation = 1
            self.backend.add(GENERATION_KEY, generation, None)
        return generation

    def _key(self, name, params):
        digest = hashlib.md5(json.dumps(params, sort_keys=True, default=str).encode()).hexdigest()
        return f"route_distances:query:{self._generation()}:{name}:{digest}"

    def get_or_set(self, name, params, compute):
        if not self.ttl:
            return compute()

        key = self._key(name, params)
        value = self.backend.get(key)
        if value is not None:
            logger.debug(f"Query cache hit for {name}")
            return value

        value = compute()
        self.backend.set(key, value, self.ttl)
        return value

    def invalidate(self):
        try:
            self.backend.incr(GENERATION_KEY)
        except ValueError:
            # Counter missing or evicted
            self.backend.set(GENERATION_KEY, 2, None)
        logger.debug("Query cache invalidated")


query_cache = QueryCache()
