#!/usr/bin/env python3

"""
Performance monitoring for the gene model parser.

Tracks memory usage and processing time per phase, and fans line
decoding out over worker threads while keeping results in line order.
"""

import time
import logging
import psutil
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, TypeVar
from contextlib import contextmanager

from ..core.exceptions import MemoryError as ParserMemoryError

T = TypeVar('T')
R = TypeVar('R')


@dataclass
class PerformanceMetrics:
    """Container for performance metrics."""
    start_time: float
    end_time: Optional[float] = None
    peak_memory_mb: float = 0.0
    current_memory_mb: float = 0.0
    operations_count: int = 0
    phase_name: str = ""

    @property
    def elapsed_time(self) -> float:
        """Get elapsed time in seconds."""
        if self.end_time is None:
            return time.time() - self.start_time
        return self.end_time - self.start_time

    @property
    def operations_per_second(self) -> float:
        """Get operations per second."""
        elapsed = self.elapsed_time
        if elapsed > 0 and self.operations_count > 0:
            return self.operations_count / elapsed
        return 0.0


class PerformanceMonitor:
    """Memory and timing monitor organised by processing phase."""

    def __init__(self, memory_limit_mb: int = 4096):
        self.memory_limit_mb = memory_limit_mb
        self.start_time = time.time()
        self.phase_metrics: Dict[str, PerformanceMetrics] = {}
        self.current_phase: Optional[str] = None

        try:
            self.process = psutil.Process()
        except psutil.Error as e:
            self.process = None
            logging.warning(f"Memory monitoring disabled: {e}")

    def get_memory_usage(self) -> float:
        """Get current memory usage in MB."""
        if not self.process:
            return 0.0

        try:
            memory_mb = self.process.memory_info().rss / 1024 / 1024
        except psutil.Error as e:
            logging.warning(f"Error getting memory usage: {e}")
            return 0.0

        # Update peak memory for current phase
        if self.current_phase and self.current_phase in self.phase_metrics:
            metrics = self.phase_metrics[self.current_phase]
            metrics.current_memory_mb = memory_mb
            metrics.peak_memory_mb = max(metrics.peak_memory_mb, memory_mb)

        return memory_mb

    def check_memory_limit(self) -> bool:
        """Check if memory usage exceeds limit."""
        current_memory = self.get_memory_usage()

        if current_memory > self.memory_limit_mb:
            error_msg = "Memory usage exceeded limit"
            logging.warning(f"{error_msg}: {current_memory:.1f}MB > {self.memory_limit_mb}MB")
            raise ParserMemoryError(error_msg, current_memory, self.memory_limit_mb)

        return True

    def start_phase(self, phase_name: str) -> None:
        """Start monitoring a processing phase."""
        if self.current_phase:
            self.end_phase()

        self.current_phase = phase_name
        self.phase_metrics[phase_name] = PerformanceMetrics(
            start_time=time.time(),
            phase_name=phase_name,
            current_memory_mb=self.get_memory_usage()
        )

        logging.info(f"Started phase: {phase_name}")

    def end_phase(self) -> Optional[PerformanceMetrics]:
        """End the current phase and return metrics."""
        if not self.current_phase:
            return None

        metrics = self.phase_metrics[self.current_phase]
        metrics.end_time = time.time()
        metrics.current_memory_mb = self.get_memory_usage()
        metrics.peak_memory_mb = max(metrics.peak_memory_mb, metrics.current_memory_mb)

        logging.info(f"Completed phase {self.current_phase} in {metrics.elapsed_time:.2f}s "
                     f"(peak memory: {metrics.peak_memory_mb:.1f}MB)")

        self.current_phase = None
        return metrics

    def record_operations(self, count: int) -> None:
        """Record the number of operations performed in current phase."""
        if self.current_phase and self.current_phase in self.phase_metrics:
            self.phase_metrics[self.current_phase].operations_count += count

    @contextmanager
    def phase_context(self, phase_name: str):
        """Context manager for monitoring a phase."""
        self.start_phase(phase_name)
        try:
            yield self.phase_metrics[phase_name]
        finally:
            self.end_phase()

    def get_total_elapsed_time(self) -> float:
        """Get total elapsed time since monitor creation."""
        return time.time() - self.start_time

    def get_peak_memory(self) -> float:
        """Get peak memory usage across all phases."""
        if not self.phase_metrics:
            return self.get_memory_usage()

        return max(metrics.peak_memory_mb for metrics in self.phase_metrics.values())

    def get_performance_summary(self) -> Dict[str, Any]:
        """Get comprehensive performance summary."""
        summary = {
            "total_elapsed_time": self.get_total_elapsed_time(),
            "peak_memory_mb": self.get_peak_memory(),
            "current_memory_mb": self.get_memory_usage(),
            "memory_limit_mb": self.memory_limit_mb,
            "phases": {}
        }

        for phase_name, metrics in self.phase_metrics.items():
            summary["phases"][phase_name] = {
                "elapsed_time": metrics.elapsed_time,
                "operations_count": metrics.operations_count,
                "operations_per_second": metrics.operations_per_second,
                "peak_memory_mb": metrics.peak_memory_mb
            }

        return summary

    def log_performance_report(self) -> None:
        """Log comprehensive performance report."""
        summary = self.get_performance_summary()

        logging.info("=" * 50)
        logging.info("PERFORMANCE REPORT")
        logging.info("=" * 50)
        logging.info(f"Total time: {summary['total_elapsed_time']:.2f} seconds")
        logging.info(f"Peak memory: {summary['peak_memory_mb']:.1f} MB")
        logging.info(f"Memory limit: {summary['memory_limit_mb']} MB")

        if summary['phases']:
            logging.info("Phase breakdown:")
            for phase_name, phase_data in summary['phases'].items():
                logging.info(f"  {phase_name}: {phase_data['elapsed_time']:.2f}s "
                             f"({phase_data['operations_count']} ops, "
                             f"{phase_data['operations_per_second']:.1f} ops/s, "
                             f"{phase_data['peak_memory_mb']:.1f}MB)")


class BatchProcessor:
    """
    Ordered batch mapping with optional worker threads.

    Results always come back in input order, so a sequential consumer
    sees them exactly as if they had been computed inline.
    """

    def __init__(self, monitor: Optional[PerformanceMonitor] = None, batch_size: int = 1000,
                 workers: int = 1, check_memory: bool = False):
        self.monitor = monitor
        self.batch_size = batch_size
        self.workers = workers
        self.check_memory = check_memory
        self._executor: Optional[ThreadPoolExecutor] = None
        self.batches_processed = 0
        self.items_processed = 0

    def map_ordered(self, func: Callable[[T], R], items: List[T]) -> List[R]:
        """Apply func to every item, preserving order."""
        if self.workers > 1 and len(items) > 1:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=self.workers,
                                                    thread_name_prefix='decode')
            results = list(self._executor.map(func, items))
        else:
            results = [func(item) for item in items]

        self.batches_processed += 1
        self.items_processed += len(items)
        if self.batches_processed % 10 == 0:
            logging.debug(f"Processed {self.items_processed:,} items in "
                          f"{self.batches_processed} batches")
        if self.monitor is not None:
            self.monitor.record_operations(len(items))
            if self.check_memory:
                self.monitor.check_memory_limit()
        return results

    def batches(self, items: Iterable[T]) -> Iterator[List[T]]:
        """Split an iterable into lists of at most batch_size items."""
        batch: List[T] = []
        for item in items:
            batch.append(item)
            if len(batch) >= self.batch_size:
                yield batch
                batch = []
        if batch:
            yield batch

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
