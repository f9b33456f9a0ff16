from __future__ import annotations
from pathlib import Path
from typing import Iterable, List, Optional, Set, Tuple
import logging
import subprocess

import bamnostic as bn

from .errors import ConversionError
from .fastq import strip_mate
from .represcueClasses import ChainKey, IntervalRecord, RescueRecord
from .schedule import label_length


def _get_read_name(aln) -> str:
    # Different libs/files expose different attributes
    for attr in ("query_name", "qname", "read_name"):
        v = getattr(aln, attr, None)
        if v:
            return v
    return ""


def _aln_to_interval(aln) -> Optional[IntervalRecord]:
    """BED6 row for one mapped alignment, as bedtools bamtobed writes it."""
    if getattr(aln, "is_unmapped", False):
        return None
    chrom = getattr(aln, "reference_name", None)
    if chrom is None:
        return None

    # bamnostic uses 'pos' (0-based) instead of 'reference_start'
    start = getattr(aln, "pos", 0) or 0
    end = getattr(aln, "reference_end", None)
    if end is None:
        seq = getattr(aln, "seq", None) or getattr(aln, "query_sequence", None) or ""
        end = start + len(seq)
    strand = "-" if getattr(aln, "is_reverse", False) else "+"
    mapq = getattr(aln, "mapq", 0) or 0
    return IntervalRecord(chrom, int(start), int(end), _get_read_name(aln), int(mapq), strand)


def read_intervals(bam_path: str | Path) -> List[IntervalRecord]:
    out: List[IntervalRecord] = []
    bf = bn.AlignmentFile(str(bam_path), "rb")
    try:
        for aln in bf:
            iv = _aln_to_interval(aln)
            if iv is not None:
                out.append(iv)
    finally:
        bf.close()
    return out


def mapped_read_names(bam_path: str | Path) -> Set[str]:
    """Names of all mapped reads in a BAM."""
    names: Set[str] = set()
    bf = bn.AlignmentFile(str(bam_path), "rb")
    try:
        for aln in bf:
            if getattr(aln, "is_unmapped", False):
                continue
            name = _get_read_name(aln)
            if name:
                names.add(name)
    finally:
        bf.close()
    return names


def filter_mapped(
    samtools: str,
    sam_path: Path,
    bam_path: Path,
    logger: logging.Logger | None = None,
) -> Path:
    """Keep only mapped records (-F 4) of a SAM, written as BAM."""
    cmd = [samtools, "view", "-h", "-b", "-F", "4", "-o", str(bam_path), str(sam_path)]
    if logger:
        logger.debug("Running: " + " ".join(cmd))
    proc = subprocess.run(cmd, capture_output=True, text=True)
    if proc.returncode != 0:
        tail = (proc.stderr or "").strip().splitlines()[-5:]
        raise RuntimeError(f"{samtools} view exited with status {proc.returncode}: {' | '.join(tail)}")
    return bam_path


def write_bed(intervals: Iterable[IntervalRecord], path: str | Path) -> int:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    n = 0
    with open(out, "w", encoding="utf-8") as fh:
        for iv in intervals:
            fh.write(iv.to_bed() + "\n")
            n += 1
    return n


def check_round_trip(record: RescueRecord, intervals: List[IntervalRecord]) -> None:
    """
    Every rescued read yields exactly one interval, and no interval names a
    foreign read. Names are compared without a trailing /1 or /2, as the
    aligner may drop it.
    """
    expected = [strip_mate(i) for i in record.reads.ids]
    names = [strip_mate(iv.name) for iv in intervals]
    if len(names) != len(expected):
        raise ValueError(f"{len(expected)} rescued reads but {len(names)} interval records")
    exp_set = set(expected)
    foreign = [n for n in names if n not in exp_set]
    if foreign:
        raise ValueError(f"interval records for reads not rescued in this round, e.g. {foreign[:3]}")
    if len(set(names)) != len(names):
        raise ValueError("more than one interval record for the same read")


class BamToBed:
    """
    Interval converter: read a round's mapped-only BAM with bamnostic into
    BED6 intervals. A SAM is first filtered to mapped records with samtools.
    """

    def __init__(self, samtools: str = "samtools", logger: logging.Logger | None = None):
        self.samtools = samtools
        self.logger = logger or logging.getLogger("represcue.intervals")

    def convert(self, record: RescueRecord, out_prefix: str | Path) -> List[IntervalRecord]:
        if len(record.reads) == 0:
            return []
        if record.alignments is None:
            raise ValueError("rescued reads have no alignment file to convert")
        aln = Path(record.alignments)
        if aln.suffix.lower() == ".bam":
            return read_intervals(aln)
        bam = filter_mapped(self.samtools, aln, Path(f"{out_prefix}.bam"), logger=self.logger)
        return read_intervals(bam)


def merge_records(
    key: ChainKey,
    records: Iterable[RescueRecord],
    converter,
    *,
    read_length: int,
    mapping_dir: Path,
    out_dir: Path,
    exp_id: str,
) -> Tuple[List[IntervalRecord], List[Path], Path]:
    """
    Convert each round's rescued reads to intervals, write one BED per round
    and the concatenation of all rounds (in round order) as the chain's BED.
    """
    merged: List[IntervalRecord] = []
    round_beds: List[Path] = []
    for rec in records:
        prefix = mapping_dir / f"{exp_id}_{key.mapped_tag}_{label_length(read_length, rec.trim)}"
        try:
            ivs = list(converter.convert(rec, prefix))
            check_round_trip(rec, ivs)
        except Exception as e:
            raise ConversionError(key, rec.trim.round, str(e)) from e
        bed = Path(f"{prefix}.bed")
        write_bed(ivs, bed)
        round_beds.append(bed)
        merged.extend(ivs)

    merged_bed = out_dir / f"{exp_id}_{key.mapped_tag}.bed"
    write_bed(merged, merged_bed)
    return merged, round_beds, merged_bed
