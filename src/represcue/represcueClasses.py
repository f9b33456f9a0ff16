from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple


# Single FASTQ record; id is the first whitespace token of the header
@dataclass(frozen=True)
class Read:
    __slots__ = ('id', 'seq', 'qual', 'header')
    id: str
    seq: str
    qual: str
    header: str


@dataclass(frozen=True)
class ReadBatch:
    """Ordered, immutable set of reads for one round (optionally backed by a FASTQ file)."""
    reads: Tuple[Read, ...] = ()
    path: Optional[Path] = None

    def __len__(self) -> int:
        return len(self.reads)

    def __iter__(self):
        return iter(self.reads)

    @property
    def ids(self) -> List[str]:
        return [r.id for r in self.reads]


@dataclass(frozen=True)
class ReferenceIndex:
    name: str   # "primary" or "repeat"
    base: Path  # Bowtie index basename, e.g. /refs/genome for /refs/genome.1.ebwt


@dataclass(frozen=True)
class TrimSpec:
    round: int
    anchor5: int = 1
    trim3: int = 0


@dataclass(frozen=True)
class AlignmentResult:
    mapped: ReadBatch
    unmapped: ReadBatch
    alignments: Optional[Path] = None  # SAM written by the aligner for this round


@dataclass(frozen=True)
class RescueRecord:
    trim: TrimSpec
    effective_length: int  # bases aligned: read_len - anchor5 - trim3
    reads: ReadBatch
    alignments: Optional[Path] = None


@dataclass(frozen=True)
class ChainResult:
    records: Tuple[RescueRecord, ...]
    unmapped: ReadBatch
    unmapped_path: Optional[Path] = None

    @property
    def rescued(self) -> int:
        return sum(len(r.reads) for r in self.records)


# BED6 as written by bedtools bamtobed
@dataclass(frozen=True)
class IntervalRecord:
    __slots__ = ('chrom', 'start', 'end', 'name', 'score', 'strand')
    chrom: str
    start: int  # 0-based
    end: int    # exclusive
    name: str
    score: int
    strand: str

    def to_bed(self) -> str:
        return f"{self.chrom}\t{self.start}\t{self.end}\t{self.name}\t{self.score}\t{self.strand}"


@dataclass(frozen=True, order=True)
class ChainKey:
    read_end: int   # 1 or 2
    reference: str  # "primary" or "repeat"

    @property
    def tag(self) -> str:
        base = f"R{self.read_end}"
        return f"REP_{base}" if self.reference == "repeat" else base

    @property
    def mapped_tag(self) -> str:
        base = f"MAPPED_R{self.read_end}"
        return f"REP_{base}" if self.reference == "repeat" else base

    def __str__(self) -> str:
        return f"R{self.read_end}/{self.reference}"


# Per-chain outcome reported by the pipeline
@dataclass
class ChainOutcome:
    key: ChainKey
    status: str = "pending"  # ok | align_failed | convert_failed | error
    result: Optional[ChainResult] = None
    intervals: List[IntervalRecord] = field(default_factory=list)
    round_beds: List[Path] = field(default_factory=list)
    merged_bed: Optional[Path] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


@dataclass
class PipelineResult:
    outcomes: Dict[ChainKey, ChainOutcome]
    out_dir: Optional[Path] = None
    summary_path: Optional[Path] = None

    @property
    def ok(self) -> bool:
        return all(o.ok for o in self.outcomes.values())

    @property
    def failed(self) -> List[ChainOutcome]:
        return [o for o in self.outcomes.values() if not o.ok]

    def intervals(self, read_end: int, reference: str) -> List[IntervalRecord]:
        return self.outcomes[ChainKey(read_end, reference)].intervals
