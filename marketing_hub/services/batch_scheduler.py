"""
Batch Scheduler

Runs a unit of async work over many items in fixed-size batches:
batches run one after another, items inside a batch run concurrently and
are joined before the next batch starts, with a fixed pause in between.
One item's failure is recorded on its result and never aborts the run.
"""
import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from marketing_hub.config import get_settings
from marketing_hub.exceptions import MappingAbsentError
from marketing_hub.utils.logger import log

T = TypeVar("T")

SUCCESS = "success"
ERROR = "error"
SKIPPED = "skipped"


def chunk(items: Sequence[T], size: int) -> List[List[T]]:
    if size < 1:
        raise ValueError("Batch size must be at least 1")
    items = list(items)
    return [items[i:i + size] for i in range(0, len(items), size)]


@dataclass
class BatchJobResult:
    """Outcome of one item"""
    item_id: str
    status: str = SUCCESS
    error: Optional[str] = None
    duration_ms: int = 0
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"item_id": self.item_id, "status": self.status, "duration_ms": self.duration_ms}
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class BatchTiming:
    index: int
    size: int
    duration_ms: int


@dataclass
class RunReport:
    """Run-level summary, for logs and the cron response"""
    name: str
    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
    duration_ms: int = 0
    results: List[BatchJobResult] = field(default_factory=list)
    batches: List[BatchTiming] = field(default_factory=list)
    timed_out: bool = False

    def _count(self, status: str) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def succeeded(self) -> int:
        return self._count(SUCCESS)

    @property
    def failed(self) -> int:
        return self._count(ERROR)

    @property
    def skipped(self) -> int:
        return self._count(SKIPPED)

    def result_for(self, item_id: str) -> Optional[BatchJobResult]:
        for result in self.results:
            if result.item_id == item_id:
                return result
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_ms": self.duration_ms,
            "total": len(self.results),
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "timed_out": self.timed_out,
            "batches": [
                {"index": b.index, "size": b.size, "duration_ms": b.duration_ms} for b in self.batches
            ],
            "results": [r.to_dict() for r in self.results],
        }


class BatchScheduler:
    """
    Batch policy for the sync jobs.

    batch_size           items in flight at once
    batch_delay_seconds  pause between batches
    item_timeout_seconds hard limit per item (None = unbounded)
    max_execution_seconds once exceeded, remaining items are skipped
    """

    def __init__(
        self,
        batch_size: Optional[int] = None,
        batch_delay_seconds: Optional[float] = None,
        item_timeout_seconds: Optional[float] = None,
        max_execution_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        settings = get_settings()
        self.batch_size = batch_size if batch_size is not None else settings.sync_batch_size
        self.batch_delay_seconds = (
            batch_delay_seconds if batch_delay_seconds is not None else settings.sync_batch_delay_seconds
        )
        self.item_timeout_seconds = item_timeout_seconds
        self.max_execution_seconds = (
            max_execution_seconds if max_execution_seconds is not None else settings.sync_max_execution_seconds
        )
        self.sleep = sleep
        if self.batch_size < 1:
            raise ValueError("Batch size must be at least 1")

    async def _run_item(self, item: T, worker: Callable[[T], Awaitable[Any]], item_id: str) -> BatchJobResult:
        start = time.monotonic()
        result = BatchJobResult(item_id=item_id)
        try:
            if self.item_timeout_seconds:
                result.value = await asyncio.wait_for(worker(item), timeout=self.item_timeout_seconds)
            else:
                result.value = await worker(item)
        except MappingAbsentError as e:
            result.status = SKIPPED
            result.error = str(e)
        except asyncio.TimeoutError:
            result.status = ERROR
            result.error = f"Timed out after {self.item_timeout_seconds}s"
        except Exception as e:
            result.status = ERROR
            result.error = f"{type(e).__name__}: {e}"
        result.duration_ms = int((time.monotonic() - start) * 1000)

        if result.status == ERROR:
            log.error(f"[Batch] {item_id} failed: {result.error}")
        elif result.status == SKIPPED:
            log.info(f"[Batch] {item_id} skipped: {result.error}")
        return result

    async def run(
        self,
        items: Sequence[T],
        worker: Callable[[T], Awaitable[Any]],
        item_id: Callable[[T], str] = str,
        name: str = "batch",
    ) -> RunReport:
        report = RunReport(name=name)
        run_start = time.monotonic()
        batches = chunk(items, self.batch_size)

        log.info(f"[{name}] Processing {len(items)} items in {len(batches)} batches of {self.batch_size}")

        for index, batch in enumerate(batches):
            elapsed = time.monotonic() - run_start
            if self.max_execution_seconds and elapsed > self.max_execution_seconds:
                remaining = [i for b in batches[index:] for i in b]
                log.warning(f"[{name}] Time budget exhausted after {elapsed:.1f}s, "
                            f"skipping {len(remaining)} remaining items")
                report.timed_out = True
                for item in remaining:
                    report.results.append(BatchJobResult(
                        item_id=item_id(item), status=SKIPPED, error="time budget exhausted"
                    ))
                break

            batch_start = time.monotonic()
            log.info(f"[Batch {index + 1}/{len(batches)}] {', '.join(item_id(i) for i in batch)}")
            results = await asyncio.gather(*(self._run_item(i, worker, item_id(i)) for i in batch))
            report.results.extend(results)
            report.batches.append(BatchTiming(
                index=index,
                size=len(batch),
                duration_ms=int((time.monotonic() - batch_start) * 1000),
            ))

            if index < len(batches) - 1 and self.batch_delay_seconds > 0:
                await self.sleep(self.batch_delay_seconds)

        report.finished_at = datetime.utcnow()
        report.duration_ms = int((time.monotonic() - run_start) * 1000)
        log.info(f"[{name}] Done in {report.duration_ms}ms: {report.succeeded} succeeded, "
                 f"{report.failed} failed, {report.skipped} skipped")
        return report
