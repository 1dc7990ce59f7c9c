"""
Completion engine for the distance cache.

Given a scope (one pair, one source against every destination, every source
against one destination, or the full matrix) the engine returns every cached
Distance in that scope, computing only the pairs that are missing. Provider
work is bounded by a wall-clock budget, a batch size and a fallback limit;
whatever was assembled when a limit is hit is returned with the result
flagged as truncated.
"""
from collections import deque
from typing import Any, Dict, List, Optional, Tuple
import logging
import time

from route_distances.core.budget import TimeBudget
from route_distances.core.exceptions import (
    ConflictError,
    ProviderError,
    UngeocodableDestination,
)
from route_distances.core.route_provider import GoogleRouteProvider
from route_distances.core.types import (
    UNCOMPUTED,
    CompletionResult,
    DistanceResult,
    RunState,
    Scope,
    ScopeKind,
)
from route_distances.models import Destination, Distance, Source
from route_distances.services.distance_cache_service import DistanceCache
from route_distances.services.location_service import LocationService
from route_distances.services.query_cache import query_cache
from route_distances.settings import (
    BATCH_SIZE_LIMIT,
    FALLBACK_LIMIT,
    GEOCODE_LIMIT_PER_RUN,
    PROVIDER_CALL_DELAY_SECONDS,
    TIME_BUDGET_SECONDS,
)

logger = logging.getLogger(__name__)

Pair = Tuple[Source, Destination]


def _name_key(name):
    return (name or '').lower()


def _row_sort_key(row: Distance):
    return (_name_key(row.source.name), _name_key(row.destination.name), row.source_id, row.destination_id)


def _pair_sort_key(pair: Pair):
    source, destination = pair
    return (_name_key(source.name), _name_key(destination.name), source.id, destination.id)


class _Run:
    """Mutable bookkeeping for one completion run."""

    def __init__(self, scope: Scope, budget: TimeBudget):
        self.scope = scope
        self.budget = budget
        self.state = RunState.PLANNING
        self.rows: Dict[Tuple[int, int], Distance] = {}
        self.new_calculations = 0
        self.timed_out = False
        self.truncated = False

    def transition(self, state: RunState):
        logger.debug(f"[{self.scope.kind.value}] {self.state.value} -> {state.value}")
        self.state = state

    def budget_exceeded(self) -> bool:
        if self.budget.exceeded():
            if not self.timed_out:
                logger.info(f"[{self.scope.kind.value}] Time budget of {self.budget.seconds}s "
                            f"exceeded after {self.budget.elapsed_ms()}ms")
            self.timed_out = True
            self.truncated = True
            return True
        return False

    def note_overrun(self):
        """Flag a run whose last provider call finished past the budget."""
        if not self.timed_out and self.budget.exceeded():
            logger.info(f"[{self.scope.kind.value}] Finished {self.budget.elapsed_ms()}ms into "
                        f"a {self.budget.seconds}s time budget")
            self.timed_out = True


class CompletionService:
    """
    Fills gaps in the distance cache for a scope and returns the scope's rows.

    Batch size, fallback limit and the time budget default to the deployment
    profile in settings and can be overridden per instance.
    """

    def __init__(
        self,
        provider=None,
        distance_cache=None,
        location_service=None,
        cache=None,
        batch_size: Optional[int] = None,
        fallback_limit: Optional[int] = None,
        time_budget: Optional[float] = None,
        call_delay: Optional[float] = None,
        geocode_limit: Optional[int] = None,
        clock=None
    ):
        self.provider = provider or GoogleRouteProvider()
        self.distance_cache = distance_cache or DistanceCache()
        self.cache = cache or query_cache
        self.location_service = location_service or LocationService(
            provider=self.provider,
            distance_cache=self.distance_cache,
            cache=self.cache
        )
        self.batch_size = batch_size or BATCH_SIZE_LIMIT
        self.fallback_limit = FALLBACK_LIMIT if fallback_limit is None else fallback_limit
        self.time_budget = TIME_BUDGET_SECONDS if time_budget is None else time_budget
        self.call_delay = PROVIDER_CALL_DELAY_SECONDS if call_delay is None else call_delay
        self.geocode_limit = GEOCODE_LIMIT_PER_RUN if geocode_limit is None else geocode_limit
        self.clock = clock

    def complete(self, scope: Scope) -> CompletionResult:
        """
        Return every Distance in the scope, computing the missing ones.

        Args:
            scope: The pair, row, column or full matrix to complete.

        Returns:
            CompletionResult with the rows sorted by source name then
            destination name.

        Raises:
            ProviderNotConfigured: If no API key is set. Nothing is attempted.
            ScopeNotFound: If the scope references an unknown id.
            UngeocodableDestination: For a single pair whose destination has
                no coordinates and cannot be geocoded.
        """
        self.provider.ensure_configured()
        run = _Run(scope, TimeBudget(self.time_budget, clock=self.clock))

        sources, destinations = self._plan(scope)
        logger.info(f"[{scope.kind.value}] Planning {len(sources)} sources x {len(destinations)} destinations")

        run.transition(RunState.FETCHING_EXISTING)
        existing = self._fetch_existing(scope, sources, destinations)
        run.rows.update(existing)

        run.transition(RunState.DIFFING)
        missing = [
            (source, destination)
            for source in sources
            for destination in destinations
            if (source.id, destination.id) not in existing
        ]
        logger.info(f"[{scope.kind.value}] Found {len(existing)} existing distances, "
                    f"need to calculate {len(missing)} new ones")

        if missing:
            missing = self._resolve_coordinates(run, missing)

        if missing and not run.timed_out:
            self._fill(run, missing)

        if run.new_calculations:
            self.cache.invalidate()

        run.transition(RunState.PARTIAL_DONE if (run.truncated or run.timed_out) else RunState.DONE)
        rows = sorted(run.rows.values(), key=_row_sort_key)
        elapsed_ms = run.budget.elapsed_ms()

        logger.info(f"[{scope.kind.value}] Completed: {run.new_calculations} new distances, "
                    f"{len(rows)} total in {elapsed_ms}ms"
                    + (" (timed out)" if run.timed_out else ""))

        return CompletionResult(
            rows=rows,
            truncated=run.truncated,
            timed_out=run.timed_out,
            elapsed_ms=elapsed_ms,
            new_calculations=run.new_calculations,
            state=run.state
        )

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def _plan(self, scope: Scope) -> Tuple[List[Source], List[Destination]]:
        if scope.source_id is not None:
            sources = [self.location_service.get_source(scope.source_id)]
        else:
            sources = list(Source.objects.order_by('name', 'id'))

        if scope.destination_id is not None:
            destinations = [self.location_service.get_destination(scope.destination_id)]
        else:
            destinations = list(Destination.objects.order_by('name', 'id'))

        return sources, destinations

    def _fetch_existing(
        self,
        scope: Scope,
        sources: List[Source],
        destinations: List[Destination]
    ) -> Dict[Tuple[int, int], Distance]:
        """One bulk read of the cached rows for the whole scope."""
        source_ids = [source.id for source in sources] if scope.source_id is not None else None
        destination_ids = (
            [destination.id for destination in destinations] if scope.destination_id is not None else None
        )
        rows = self.distance_cache.get_many(source_ids, destination_ids)
        return {row.pair: row for row in rows}

    def _resolve_coordinates(self, run: _Run, missing: List[Pair]) -> List[Pair]:
        """
        Geocode destinations of missing pairs that have no coordinates.

        Pairs whose destination stays unresolved are dropped. For a single
        pair scope that is an error; for bulk scopes the destination is
        skipped quietly.
        """
        unresolved = {}
        for _, destination in missing:
            if not destination.has_coordinates:
                unresolved.setdefault(destination.id, destination)

        if not unresolved:
            return missing

        is_pair = run.scope.kind == ScopeKind.PAIR
        failed = set()
        attempts = 0

        for destination in unresolved.values():
            if not is_pair and attempts >= self.geocode_limit:
                logger.info(f"Geocode limit of {self.geocode_limit} reached, "
                            f"skipping remaining destinations without coordinates")
                run.truncated = True
                failed.add(destination.id)
                continue
            if run.budget_exceeded():
                failed.add(destination.id)
                continue
            if attempts and self.call_delay:
                time.sleep(self.call_delay)
            attempts += 1

            try:
                location = self.location_service.geocode_destination(destination)
            except ProviderError as e:
                logger.warning(f"Geocoding \"{destination.name}\" failed: {e}")
                location = None

            if not location:
                if is_pair:
                    raise UngeocodableDestination(destination)
                failed.add(destination.id)

        return [(source, destination) for source, destination in missing if destination.id not in failed]

    # ------------------------------------------------------------------
    # Provider calls
    # ------------------------------------------------------------------

    def _fill(self, run: _Run, missing: List[Pair]) -> None:
        pending = deque(sorted(missing, key=_pair_sort_key))
        batches = 0

        while pending:
            if run.budget_exceeded():
                break

            run.transition(RunState.BATCHING)
            batch = [pending.popleft() for _ in range(min(self.batch_size, len(pending)))]
            if batches and self.call_delay:
                time.sleep(self.call_delay)
            batches += 1
            logger.debug(f"[{run.scope.kind.value}] Batch {batches} of {len(batch)} pairs, "
                         f"{run.budget.remaining():.1f}s of budget left")

            run.transition(RunState.PROVIDER_CALLING)
            try:
                results = self._compute_batch(run, batch)
            except ProviderError as e:
                logger.warning(f"Batch of {len(batch)} pairs failed ({e}), "
                               f"falling back to up to {self.fallback_limit} single calls")
                self._fallback(run, batch)
                # The bulk path is degraded; leave the rest for a later run
                if pending:
                    run.truncated = True
                break

            run.transition(RunState.PERSISTING)
            uncomputed = 0
            for source, destination in batch:
                result = results.get((source.id, destination.id), UNCOMPUTED)
                if result is UNCOMPUTED:
                    uncomputed += 1
                    continue
                if result is None:
                    logger.warning(f"No distance from \"{source.name}\" to \"{destination.name}\"")
                    continue
                self._persist(run, source, destination, result)

            if uncomputed:
                logger.warning(f"{uncomputed} of {len(batch)} pairs in the batch were not computed")
                run.truncated = True

        if pending:
            run.truncated = True

        run.note_overrun()

    @staticmethod
    def _group_by_destinations(batch: List[Pair]) -> List[Tuple[List[Source], List[Destination]]]:
        """
        Split a batch into origin x destination grids that cover only its pairs.

        Sources missing the same set of destinations share one grid.
        """
        per_source: Dict[int, Tuple[Source, List[Destination]]] = {}
        for source, destination in batch:
            per_source.setdefault(source.id, (source, []))[1].append(destination)

        grids: Dict[Tuple[int, ...], Tuple[List[Source], List[Destination]]] = {}
        for source, destinations in per_source.values():
            key = tuple(destination.id for destination in destinations)
            grids.setdefault(key, ([], destinations))[0].append(source)

        return list(grids.values())

    def _compute_batch(self, run: _Run, batch: List[Pair]) -> Dict[Tuple[int, int], Any]:
        """
        Call the matrix endpoint for each grid of the batch.

        Pairs of a grid that failed, or that the budget stopped before, are
        absent from the result or UNCOMPUTED. Raises the last ProviderError only when every
        grid that was sent failed.
        """
        results: Dict[Tuple[int, int], Any] = {}
        grids = self._group_by_destinations(batch)
        failures = 0
        last_error = None

        for index, (origins, targets) in enumerate(grids):
            if index:
                if run.budget_exceeded():
                    break
                if self.call_delay:
                    time.sleep(self.call_delay)
            try:
                matrix = self.provider.compute_batch(
                    [source.location for source in origins],
                    [destination.location for destination in targets],
                    should_stop=run.budget_exceeded
                )
            except ProviderError as e:
                failures += 1
                last_error = e
                logger.warning(f"Distance matrix for {len(origins)} x {len(targets)} failed: {e}")
                continue

            for i, source in enumerate(origins):
                for j, destination in enumerate(targets):
                    results[(source.id, destination.id)] = matrix[i][j]

        if failures and failures == len(grids):
            raise last_error

        return results

    def _fallback(self, run: _Run, batch: List[Pair]) -> None:
        attempted = 0
        for source, destination in batch[:self.fallback_limit]:
            if run.budget_exceeded():
                break
            if attempted and self.call_delay:
                time.sleep(self.call_delay)
            attempted += 1

            run.transition(RunState.PROVIDER_CALLING)
            try:
                result = self.provider.compute_one(source.location, destination.location)
            except ProviderError as e:
                logger.warning(f"Distance from \"{source.name}\" to \"{destination.name}\" failed: {e}")
                continue

            if result is None:
                logger.info(f"No route from \"{source.name}\" to \"{destination.name}\"")
                continue

            run.transition(RunState.PERSISTING)
            self._persist(run, source, destination, result)

        if attempted < len(batch):
            run.truncated = True

    def _persist(self, run: _Run, source: Source, destination: Destination, result: DistanceResult) -> None:
        try:
            row = self.distance_cache.put(source.id, destination.id, result)
            row.source = source
            row.destination = destination
            run.new_calculations += 1
        except ConflictError:
            # A concurrent run cached this pair first; use its row
            logger.info(f"Distance {source.id} -> {destination.id} was cached concurrently, reusing it")
            row = self.distance_cache.get(source.id, destination.id)
            if row is None:
                return

        run.rows[(source.id, destination.id)] = row
