"""
Shared fixtures: synthetic reads, an in-memory aligner and interval converter,
and a valid run directory layout with placeholder Bowtie index files.
"""
from pathlib import Path

import pytest

from represcue.config import RunConfig
from represcue.fastq import write_fastq
from represcue.represcueClasses import AlignmentResult, IntervalRecord, Read, ReadBatch

BASES = "ACGT"


def make_reads(n: int, length: int = 50, prefix: str = "read") -> list[Read]:
    reads = []
    for i in range(n):
        seq = "".join(BASES[(i * 7 + j * 3) % 4] for j in range(length))
        rid = f"{prefix}{i}"
        reads.append(Read(rid, seq, "I" * length, f"{rid} synthetic"))
    return reads


class FakeOracle:
    """
    Aligns a read once the round's 3' trim reaches the threshold listed for
    it under the index name; reads without a threshold never place.
    """

    def __init__(self, thresholds=None, fail_on=()):
        self.thresholds = thresholds or {}
        self.fail_on = set(fail_on)  # {(index name, read id prefix, round)}
        self.calls = []

    def align(self, reads, index, trim, *, out_prefix, mismatches=0, max_hits=1,
              seed=123, threads=1, timeout=None):
        self.calls.append({
            "index": index.name,
            "round": trim.round,
            "trim3": trim.trim3,
            "n": len(reads),
            "seed": seed,
            "mismatches": mismatches,
            "max_hits": max_hits,
            "prefix": Path(out_prefix).name,
        })
        for name, tag, rnd in self.fail_on:
            if name == index.name and tag in Path(out_prefix).name and rnd == trim.round:
                raise RuntimeError("index unreadable")
        needs = self.thresholds.get(index.name, {})
        mapped = []
        unmapped = []
        for r in reads:
            need = needs.get(r.id)
            if need is not None and trim.trim3 >= need:
                mapped.append(r)
            else:
                unmapped.append(r)
        return AlignmentResult(
            ReadBatch(tuple(mapped)), ReadBatch(tuple(unmapped)), Path(f"{out_prefix}.sam")
        )


class FakeConverter:
    """One interval per rescued read; fails for records whose prefix contains `fail_tag`."""

    def __init__(self, fail_tag=None):
        self.fail_tag = fail_tag
        self.calls = []

    def convert(self, record, out_prefix):
        self.calls.append(Path(out_prefix).name)
        if self.fail_tag and self.fail_tag in Path(out_prefix).name and len(record.reads):
            raise RuntimeError("samtools view failed")
        return [
            IntervalRecord("chrI", 100 * i, 100 * i + record.effective_length, r.id, 255, "+")
            for i, r in enumerate(record.reads)
        ]


@pytest.fixture
def fake_oracle():
    return FakeOracle()


@pytest.fixture
def run_layout(tmp_path):
    """Run dir, two FASTQs of 10 x 50 bp reads, and placeholder index files."""
    refs = tmp_path / "refs"
    refs.mkdir()
    (refs / "genome.1.ebwt").write_text("")
    (refs / "rDNA.1.ebwt").write_text("")
    run_dir = tmp_path / "run"
    run_dir.mkdir()
    fq1 = tmp_path / "sample_R1.fastq"
    fq2 = tmp_path / "sample_R2.fastq"
    write_fastq(make_reads(10, prefix="a"), fq1)
    write_fastq(make_reads(10, prefix="b"), fq2)
    return {
        "run_dir": run_dir,
        "genome_index": refs / "genome",
        "repeat_index": refs / "rDNA",
        "fq1": fq1,
        "fq2": fq2,
    }


@pytest.fixture
def run_config(run_layout):
    return RunConfig(exp_id="exp1", read_len=50, threads=2, jobs=1, **run_layout)
