from __future__ import annotations
from pathlib import Path
from typing import Iterable, Optional
import logging
import subprocess

from .fastq import strip_mate, write_batch
from .intervals import filter_mapped, mapped_read_names
from .represcueClasses import AlignmentResult, ReadBatch, ReferenceIndex, TrimSpec

DEFAULT_SEED = 123
INDEX_SUFFIXES = (".1.ebwt", ".1.ebwtl")


def index_exists(base: str | Path) -> bool:
    return any(Path(str(base) + sfx).exists() for sfx in INDEX_SUFFIXES)


def partition(batch: ReadBatch, mapped_ids: Iterable[str]) -> tuple[ReadBatch, ReadBatch]:
    """Split a batch into (mapped, unmapped), keeping input order in both."""
    ids = set(mapped_ids)
    mapped = []
    unmapped = []
    seen = set()
    for r in batch:
        if r.id in ids or strip_mate(r.id) in ids:
            mapped.append(r)
            seen.add(r.id if r.id in ids else strip_mate(r.id))
        else:
            unmapped.append(r)
    stray = ids - seen
    if stray:
        example = sorted(stray)[:3]
        raise ValueError(f"Aligner reported {len(stray)} read(s) not in the input batch, e.g. {example}")
    return ReadBatch(tuple(mapped)), ReadBatch(tuple(unmapped))


class BowtieOracle:
    """
    Bowtie 1 as the alignment oracle.

    Each call aligns one ReadBatch against one index with the given 5'/3'
    clipping, mismatch and -m limits, writes `<prefix>.sam`, keeps its mapped
    records as `<prefix>.bam` (samtools -F 4) and partitions the batch by the
    read names found in that BAM. Reads exceeding -m are suppressed by bowtie
    and so land in the unmapped half.
    """

    def __init__(
        self,
        executable: str = "bowtie",
        samtools: str = "samtools",
        logger: logging.Logger | None = None,
    ):
        self.executable = executable
        self.samtools = samtools
        self.logger = logger or logging.getLogger("represcue.bowtie")

    def command(
        self,
        reads_path: Path,
        index: ReferenceIndex,
        trim: TrimSpec,
        sam_path: Path,
        *,
        mismatches: int = 0,
        max_hits: int = 1,
        seed: int = DEFAULT_SEED,
        threads: int = 1,
    ) -> list[str]:
        cmd = [self.executable, "-q", "-5", str(trim.anchor5)]
        if trim.trim3:
            cmd += ["-3", str(trim.trim3)]
        cmd += [
            "-v", str(mismatches),
            "-m", str(max_hits),
            "-p", str(threads),
            # SAM records in input order regardless of -p
            "--reorder",
            f"--seed={seed}",
            "-S",
            str(index.base),
            str(reads_path),
            str(sam_path),
        ]
        return cmd

    def align(
        self,
        reads: ReadBatch,
        index: ReferenceIndex,
        trim: TrimSpec,
        *,
        out_prefix: str | Path,
        mismatches: int = 0,
        max_hits: int = 1,
        seed: int = DEFAULT_SEED,
        threads: int = 1,
        timeout: Optional[float] = None,
    ) -> AlignmentResult:
        prefix = Path(out_prefix)
        prefix.parent.mkdir(parents=True, exist_ok=True)

        # bowtie reads from disk; materialize in-memory batches first
        if reads.path is None or not Path(reads.path).exists():
            reads = write_batch(reads, f"{prefix}.input.fastq")

        sam_path = Path(f"{prefix}.sam")
        cmd = self.command(
            reads.path, index, trim, sam_path,
            mismatches=mismatches, max_hits=max_hits, seed=seed, threads=threads,
        )
        self.logger.debug("Running: " + " ".join(cmd))

        proc = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        if proc.returncode != 0:
            tail = (proc.stderr or "").strip().splitlines()[-5:]
            raise RuntimeError(f"{self.executable} exited with status {proc.returncode}: {' | '.join(tail)}")
        if proc.stderr:
            for line in proc.stderr.strip().splitlines():
                self.logger.debug(f"[bowtie] {line}")

        bam_path = filter_mapped(self.samtools, sam_path, Path(f"{prefix}.bam"), logger=self.logger)
        mapped, unmapped = partition(reads, mapped_read_names(bam_path))
        unmapped = write_batch(unmapped, f"{prefix}.unmapped.fastq")
        return AlignmentResult(mapped=mapped, unmapped=unmapped, alignments=bam_path)
