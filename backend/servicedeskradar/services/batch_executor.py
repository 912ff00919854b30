"""Ejecucion tolerante a fallos de un lote de consultas con nombre."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from servicedeskradar.adapters.query_client import QueryOutcome
from servicedeskradar.domain.enums import FailureKind
from servicedeskradar.domain.models import QueryFailure
from servicedeskradar.logging_utils import get_logger

logger = get_logger(__name__)

QueryFn = Callable[[], Awaitable[Any]]
# (done, total, label): se invoca antes de lanzar cada consulta
ProgressCallback = Callable[[int, int, str], None]


@dataclass(frozen=True)
class BatchQuery:
    label: str
    run: QueryFn
    default: Any = 0


@dataclass
class BatchOutcome:
    values: Dict[str, Any] = field(default_factory=dict)
    failures: List[QueryFailure] = field(default_factory=list)

    def get(self, label: str, default: Any = None) -> Any:
        return self.values.get(label, default)


class ResilientBatchExecutor:
    """Ejecuta todas las consultas del lote aunque alguna falle.

    Cada consulta puede devolver un `QueryOutcome` (se desenvuelve) o un valor
    plano. Cualquier excepcion queda registrada como fallo `UNEXPECTED` y el
    resultado toma el valor por defecto declarado. No reintenta.
    """

    def __init__(self, concurrency: int = 1, progress: Optional[ProgressCallback] = None) -> None:
        self._concurrency = max(1, int(concurrency))
        self._progress = progress

    async def run(self, queries: Sequence[BatchQuery]) -> BatchOutcome:
        labels = [q.label for q in queries]
        if len(set(labels)) != len(labels):
            raise ValueError(f"Duplicate query labels in batch: {labels}")

        outcome = BatchOutcome()
        total = len(queries)
        if not total:
            return outcome
        logger.debug("Batch started: %s queries (concurrency=%s)", total, self._concurrency)

        if self._concurrency == 1:
            for idx, query in enumerate(queries):
                self._notify(idx, total, query.label)
                value, failure = await self._execute(query)
                outcome.values[query.label] = value
                if failure is not None:
                    outcome.failures.append(failure)
            logger.debug("Batch finished: %s queries, %s failures", total, len(outcome.failures))
            return outcome

        semaphore = asyncio.Semaphore(self._concurrency)
        started = 0

        async def _bounded(query: BatchQuery) -> tuple[Any, Optional[QueryFailure]]:
            nonlocal started
            async with semaphore:
                self._notify(started, total, query.label)
                started += 1
                return await self._execute(query)

        results = await asyncio.gather(*(_bounded(q) for q in queries))
        # resultados en el orden de insercion
        for query, (value, failure) in zip(queries, results):
            outcome.values[query.label] = value
            if failure is not None:
                outcome.failures.append(failure)
        logger.debug("Batch finished: %s queries, %s failures", total, len(outcome.failures))
        return outcome

    def _notify(self, done: int, total: int, label: str) -> None:
        if self._progress is not None:
            self._progress(done, total, label)

    @staticmethod
    async def _execute(query: BatchQuery) -> tuple[Any, Optional[QueryFailure]]:
        try:
            result = await query.run()
        except Exception as exc:
            failure = QueryFailure(
                label=query.label,
                message=str(exc) or type(exc).__name__,
                kind=FailureKind.UNEXPECTED,
            )
            logger.warning("Query %s failed: %s", query.label, exc)
            return query.default, failure

        if isinstance(result, QueryOutcome):
            if result.failure is not None:
                failure = result.failure
                if failure.label != query.label:
                    failure = failure.model_copy(update={"label": query.label})
                return query.default, failure
            return result.value, None
        return result, None
