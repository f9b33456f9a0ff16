from __future__ import annotations
from pathlib import Path
from typing import List, Optional, Sequence
import logging

from .bowtie import DEFAULT_SEED
from .errors import OracleInvocationError
from .fastq import write_batch
from .represcueClasses import (
    ChainKey, ChainResult, ReadBatch, ReferenceIndex, RescueRecord, TrimSpec,
)
from .schedule import effective_length, label_length


def _check_partition(current: ReadBatch, result) -> Optional[str]:
    """Return a description of what is wrong with an oracle partition, or None."""
    n_in = len(current)
    n_map = len(result.mapped)
    n_un = len(result.unmapped)
    if n_map + n_un != n_in:
        return f"partition sizes do not add up: {n_map} mapped + {n_un} unmapped != {n_in} input"
    in_ids = set(current.ids)
    out_ids = result.mapped.ids + result.unmapped.ids
    if len(set(out_ids)) != len(out_ids):
        return "a read was classified more than once"
    if set(out_ids) != in_ids:
        return "partition does not contain the same reads as the input"
    return None


class RescueChain:
    """
    Drive one (read end, reference) pair through the trim schedule.

    Each round aligns the still-unplaced reads with exact matching and
    unique placement only; reads placed in a round become that round's
    RescueRecord and the rest are handed to the next, more trimmed round.
    """

    def __init__(
        self,
        key: ChainKey,
        index: ReferenceIndex,
        schedule: Sequence[TrimSpec],
        oracle,
        *,
        read_length: int,
        out_dir: str | Path,
        exp_id: str,
        seed: int = DEFAULT_SEED,
        threads: int = 1,
        mismatches: int = 0,
        max_hits: int = 1,
        timeout: Optional[float] = None,
        logger: logging.Logger | None = None,
    ):
        self.key = key
        self.index = index
        self.schedule = tuple(schedule)
        self.oracle = oracle
        self.read_length = read_length
        self.out_dir = Path(out_dir)
        self.exp_id = exp_id
        self.seed = seed
        self.threads = threads
        self.mismatches = mismatches
        self.max_hits = max_hits
        self.timeout = timeout
        self.logger = logger or logging.getLogger("represcue.rescue")

    def round_prefix(self, trim: TrimSpec) -> Path:
        return self.out_dir / f"{self.exp_id}_{self.key.tag}_{label_length(self.read_length, trim)}"

    @property
    def unmapped_path(self) -> Path:
        return self.out_dir / f"{self.exp_id}_{self.key.tag}_unmapped.fastq"

    def run(self, initial_reads: ReadBatch) -> ChainResult:
        current = initial_reads
        records: List[RescueRecord] = []
        n_start = len(current)
        self.logger.info(
            f"{self.key}: {n_start:,} reads, {len(self.schedule)} round(s) against {self.index.name}"
        )

        for trim in self.schedule:
            eff = effective_length(self.read_length, trim)
            if len(current) == 0:
                records.append(RescueRecord(trim, eff, ReadBatch()))
                continue

            try:
                result = self.oracle.align(
                    current,
                    self.index,
                    trim,
                    out_prefix=self.round_prefix(trim),
                    mismatches=self.mismatches,
                    max_hits=self.max_hits,
                    seed=self.seed,
                    threads=self.threads,
                    timeout=self.timeout,
                )
            except Exception as e:
                self.logger.error(f"{self.key}: round {trim.round} (trim3={trim.trim3}) failed: {e}")
                raise OracleInvocationError(self.key, self.index.name, trim.round, str(e)) from e

            problem = _check_partition(current, result)
            if problem:
                raise OracleInvocationError(self.key, self.index.name, trim.round, problem)

            records.append(RescueRecord(trim, eff, result.mapped, result.alignments))
            current = result.unmapped
            self.logger.info(
                f"{self.key}: round {trim.round} len={eff} rescued={len(result.mapped):,} "
                f"remaining={len(current):,}"
            )

        leftover = write_batch(current, self.unmapped_path)
        rescued = sum(len(r.reads) for r in records)
        self.logger.info(
            f"{self.key}: done, rescued {rescued:,}/{n_start:,}; "
            f"{len(leftover):,} never placed -> {self.unmapped_path}"
        )
        return ChainResult(tuple(records), leftover, self.unmapped_path)
