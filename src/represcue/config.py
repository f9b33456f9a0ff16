from __future__ import annotations
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional
import argparse

from .bowtie import DEFAULT_SEED, index_exists
from .errors import ConfigurationError

REQUIRED = ("exp_id", "run_dir", "genome_index", "repeat_index", "fq1", "fq2", "read_len", "threads")


@dataclass(frozen=True)
class RunConfig:
    """Everything one run needs; passed explicitly to the pipeline and its chains."""
    exp_id: str
    run_dir: Path
    genome_index: Path  # Bowtie index basename for the full genome
    repeat_index: Path  # Bowtie index basename for the isolated repeat
    fq1: Path
    fq2: Path
    read_len: int
    threads: int = 8
    jobs: int = 4       # chains run at once; 1 = sequential
    seed: int = DEFAULT_SEED
    round_timeout: Optional[float] = None
    bowtie: str = "bowtie"
    samtools: str = "samtools"
    log_level: str = "INFO"

    @classmethod
    def from_namespace(cls, args: argparse.Namespace) -> "RunConfig":
        names = {f.name for f in fields(cls)}
        kw = {k: v for k, v in vars(args).items() if k in names and v is not None}
        missing = [k for k in REQUIRED if k not in kw]
        if missing:
            raise ConfigurationError("Please provide values for all required arguments: " + ", ".join(missing))
        for k in ("run_dir", "genome_index", "repeat_index", "fq1", "fq2"):
            kw[k] = Path(kw[k])
        return cls(**kw)

    @property
    def out_dir(self) -> Path:
        return self.run_dir / self.exp_id

    def validate(self) -> "RunConfig":
        """Raise ConfigurationError for anything that would make the run fail before alignment."""
        for k in REQUIRED:
            v = getattr(self, k)
            if v is None or (isinstance(v, str) and not v.strip()):
                raise ConfigurationError(f"Missing required argument: {k}")

        if "/" in self.exp_id or self.exp_id in (".", ".."):
            raise ConfigurationError(f"Experiment id must be a plain name, got {self.exp_id!r}")
        for k in ("read_len", "threads", "jobs", "seed"):
            v = getattr(self, k)
            if isinstance(v, bool) or not isinstance(v, int):
                raise ConfigurationError(f"{k} must be an integer, got {v!r}")
        if self.read_len < 1:
            raise ConfigurationError(f"read_len must be positive, got {self.read_len}")
        if self.threads < 1:
            raise ConfigurationError(f"threads must be positive, got {self.threads}")
        if self.jobs < 1:
            raise ConfigurationError(f"jobs must be positive, got {self.jobs}")
        if self.round_timeout is not None and self.round_timeout <= 0:
            raise ConfigurationError(f"round_timeout must be positive, got {self.round_timeout}")

        if not self.run_dir.is_dir():
            raise ConfigurationError(f"Could not find directory: {self.run_dir}")
        for fq in (self.fq1, self.fq2):
            if not fq.is_file():
                raise ConfigurationError(f"Could not find file: {fq}")
        for label, base in (("genome", self.genome_index), ("repeat", self.repeat_index)):
            if not index_exists(base):
                raise ConfigurationError(
                    f"Could not find Bowtie index for {label}: expected {base}.1.ebwt "
                    f"(build it with bowtie-build first)"
                )
        if self.out_dir.exists():
            raise ConfigurationError(f"Output directory already exists: {self.out_dir}")
        return self
