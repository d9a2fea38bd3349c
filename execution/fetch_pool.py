"""Fetch Pool.

Fetches the time series and typedoc behind every data URI of a dashboard.
URIs are processed in fixed-size groups; each URI contributes two jobs (data
and typedoc) and a group must settle completely before the next one starts.
A failing job never affects its siblings.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol

from dashboard.uris import parse_data_uri, short_label
from observability.logger import Observability
from shared.models import FetchFailure, ParsedDataUri, SeriesBundle

logger = logging.getLogger(__name__)

DATA = "data"
TYPEDOC = "typedoc"


class SeriesSource(Protocol):
    async def get_time_series_data(self, uri: str) -> Any: ...

    async def get_node_typedoc(self, parsed: ParsedDataUri) -> str | None: ...


@dataclass
class FetchJob:
    uri: str
    kind: str
    run: Callable[[], Awaitable[Any]]


@dataclass
class FetchOutcome:
    uri: str
    kind: str
    value: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


OutcomeCallback = Callable[[FetchOutcome], Any]


class FetchPool:
    """Runs per-URI jobs in sequential groups of `batch_size` URIs."""

    def __init__(self, batch_size: int = 5, observability: Observability | None = None):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.batch_size = batch_size
        self.obs = observability or Observability()

    async def run(
        self,
        uris: list[str],
        job_factory: Callable[[str], list[FetchJob]],
        on_outcome: OutcomeCallback | None = None,
    ) -> list[FetchOutcome]:
        outcomes: list[FetchOutcome] = []
        for batch, start in enumerate(range(0, len(uris), self.batch_size)):
            group = uris[start:start + self.batch_size]
            jobs = [job for uri in group for job in job_factory(uri)]
            logger.debug("Fetching group of %d URIs (%d jobs)", len(group), len(jobs))

            results = await asyncio.gather(*(job.run() for job in jobs), return_exceptions=True)
            failed = sum(1 for result in results if isinstance(result, BaseException))
            self.obs.log_event(
                "fetch_group",
                {"batch": batch, "uris": len(group), "jobs": len(jobs), "failed": failed},
                level="WARNING" if failed else "INFO",
            )

            for job, result in zip(jobs, results):
                if isinstance(result, BaseException):
                    if not isinstance(result, Exception):
                        raise result
                    outcome = FetchOutcome(uri=job.uri, kind=job.kind, error=str(result) or type(result).__name__)
                else:
                    outcome = FetchOutcome(uri=job.uri, kind=job.kind, value=result)
                outcomes.append(outcome)
                if on_outcome is not None:
                    on_outcome(outcome)
        return outcomes


def _series_jobs(source: SeriesSource, uri: str) -> list[FetchJob]:
    parsed = parse_data_uri(uri)

    async def _fetch_data() -> Any:
        return await source.get_time_series_data(uri)

    async def _fetch_typedoc() -> str | None:
        if parsed is None:
            return None
        return await source.get_node_typedoc(parsed)

    return [FetchJob(uri, DATA, _fetch_data), FetchJob(uri, TYPEDOC, _fetch_typedoc)]


async def fetch_series_bundle(
    source: SeriesSource,
    uris: list[str],
    batch_size: int = 5,
    observability: Observability | None = None,
    on_outcome: OutcomeCallback | None = None,
) -> SeriesBundle:
    """Fetch data + typedoc for every URI. Failures are recorded, never raised."""
    bundle = SeriesBundle()
    if not uris:
        return bundle

    obs = observability or Observability()
    pool = FetchPool(batch_size=batch_size, observability=obs)
    unique = list(dict.fromkeys(uris))

    with obs.measure("fetch_series_bundle", {"uris": len(unique)}):
        outcomes = await pool.run(unique, lambda uri: _series_jobs(source, uri), on_outcome=on_outcome)

    for outcome in outcomes:
        if not outcome.ok:
            logger.warning("Fetch %s failed for %s: %s", outcome.kind, short_label(outcome.uri), outcome.error)
            bundle.errors.append(FetchFailure(uri=outcome.uri, kind=outcome.kind, error=str(outcome.error)))
            obs.log_event("fetch_failed", {"uri": outcome.uri, "kind": outcome.kind, "error": outcome.error}, level="WARNING")
            continue
        if outcome.kind == DATA:
            bundle.data[outcome.uri] = outcome.value
            size = len(outcome.value) if isinstance(outcome.value, (list, dict)) else None
            obs.log_event("series_fetched", {"uri": outcome.uri, "points": size})
        elif outcome.kind == TYPEDOC and outcome.value:
            bundle.typedocs[outcome.uri] = str(outcome.value)
            obs.log_event("typedoc_fetched", {"uri": outcome.uri})

    return bundle
