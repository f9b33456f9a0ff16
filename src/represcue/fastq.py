from __future__ import annotations
from pathlib import Path
from typing import Iterable, Iterator, TextIO
import gzip

from .represcueClasses import Read, ReadBatch


def _open_text_auto(path: str | Path, mode: str = "rt") -> TextIO:
    p = Path(path)
    if p.suffix.lower() == ".gz":
        return gzip.open(p, mode, encoding="utf-8", errors="replace")
    return open(p, mode, encoding="utf-8", errors="replace")


def strip_mate(name: str) -> str:
    """Read name without a trailing /1 or /2 mate suffix."""
    if name.endswith(("/1", "/2")):
        return name[:-2]
    return name


def iter_fastq(path: str | Path) -> Iterator[Read]:
    """
    Stream 4-line FASTQ records from a plain or gzipped file.
    Raises ValueError on truncated or malformed records.
    """
    with _open_text_auto(path) as fh:
        lineno = 0
        while True:
            header = fh.readline()
            if not header:
                return
            lineno += 1
            if not header.strip():
                continue
            seq = fh.readline()
            plus = fh.readline()
            qual = fh.readline()
            lineno += 3
            if not qual:
                raise ValueError(f"{path}: truncated FASTQ record ending at line {lineno}")
            if not header.startswith("@") or not plus.startswith("+"):
                raise ValueError(f"{path}: malformed FASTQ record near line {lineno - 3}")

            header = header.rstrip("\r\n")[1:]
            seq = seq.rstrip("\r\n")
            qual = qual.rstrip("\r\n")
            if len(seq) != len(qual):
                raise ValueError(
                    f"{path}: sequence/quality length mismatch for '{header}' near line {lineno - 3}"
                )
            rid = header.split(None, 1)[0] if header.strip() else ""
            if not rid:
                raise ValueError(f"{path}: empty read name near line {lineno - 3}")
            yield Read(rid, seq, qual, header)


def load_batch(path: str | Path) -> ReadBatch:
    """Load a whole FASTQ file as the ReadBatch for round 0."""
    return ReadBatch(tuple(iter_fastq(path)), Path(path))


def write_fastq(reads: Iterable[Read], path: str | Path) -> int:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    n = 0
    with _open_text_auto(out, "wt") as fh:
        for r in reads:
            fh.write(f"@{r.header}\n{r.seq}\n+\n{r.qual}\n")
            n += 1
    return n


def write_batch(batch: ReadBatch, path: str | Path) -> ReadBatch:
    """Serialize a batch and return the same reads bound to the new file."""
    write_fastq(batch.reads, path)
    return ReadBatch(batch.reads, Path(path))
