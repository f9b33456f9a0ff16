from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict
import logging
import os
import sys
import time
import traceback

import psutil

from .bowtie import BowtieOracle
from .config import RunConfig
from .errors import ConversionError, OracleInvocationError
from .fastq import load_batch
from .intervals import BamToBed, merge_records
from .represcueClasses import ChainKey, ChainOutcome, PipelineResult, ReadBatch, ReferenceIndex, TrimSpec
from .rescue import RescueChain
from .schedule import trim_schedule

READ_ENDS = (1, 2)
REFERENCES = ("primary", "repeat")
# Fixed chain order used for logging, the summary table and result iteration
CHAINS = tuple(ChainKey(end, ref) for end in READ_ENDS for ref in REFERENCES)


def _make_logger(level: str) -> logging.Logger:
    lvl = getattr(logging, level.upper(), logging.INFO)
    logger = logging.getLogger("represcue")
    if not logger.handlers:
        handler = logging.StreamHandler()
        fmt = logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        handler.setFormatter(fmt)
        logger.addHandler(handler)
    logger.setLevel(lvl)
    return logger


def _get_memory_usage():
    process = psutil.Process(os.getpid())
    return process.memory_info().rss / 1024 / 1024 # Current memory usage in MB


def _elapsed_time(start: float) -> str:
    secs = int(time.time() - start)
    if secs < 60:
        return f"{secs} sec"
    if secs < 3600:
        return f"{secs // 60} min"
    return f"{secs // 3600} hr"


def _load_reads(config: RunConfig, read_end: int, logger: logging.Logger) -> ReadBatch | Exception:
    """FASTQ of one read end; a load failure is returned and fails only that end's chains."""
    fq = config.fq1 if read_end == 1 else config.fq2
    try:
        batch = load_batch(fq)
    except (OSError, ValueError) as e:
        logger.error(f"R{read_end}: could not load reads from {fq}: {e}")
        return ValueError(f"could not load reads from {fq}: {e}")
    logger.info(f"R{read_end}: loaded {len(batch):,} reads from {fq}")
    return batch


def _run_chain(
    key: ChainKey,
    config: RunConfig,
    index: ReferenceIndex,
    schedule: tuple[TrimSpec, ...],
    reads: ReadBatch | Exception,
    oracle,
    converter,
    logger: logging.Logger,
) -> ChainOutcome:
    """Rescue one read end against one reference, then merge its rounds into intervals."""
    outcome = ChainOutcome(key)
    mapping_dir = config.out_dir / f"R{key.read_end}_mapping"

    try:
        if isinstance(reads, Exception):
            raise OracleInvocationError(key, index.name, 0, str(reads)) from reads

        chain = RescueChain(
            key,
            index,
            schedule,
            oracle,
            read_length=config.read_len,
            out_dir=mapping_dir,
            exp_id=config.exp_id,
            seed=config.seed,
            threads=config.threads,
            timeout=config.round_timeout,
            logger=logger.getChild("rescue"),
        )
        outcome.result = chain.run(reads)
    except OracleInvocationError as e:
        outcome.status = "align_failed"
        outcome.error = e
        return outcome

    try:
        outcome.intervals, outcome.round_beds, outcome.merged_bed = merge_records(
            key,
            outcome.result.records,
            converter,
            read_length=config.read_len,
            mapping_dir=mapping_dir,
            out_dir=config.out_dir,
            exp_id=config.exp_id,
        )
    except ConversionError as e:
        logger.error(str(e))
        outcome.status = "convert_failed"
        outcome.error = e
        return outcome

    outcome.status = "ok"
    return outcome


def write_summary(outcomes: Dict[ChainKey, ChainOutcome], path: str | Path) -> int:
    """Per-round rescue table for every chain that finished aligning."""
    out = Path(path)
    rows = 0
    with open(out, "w", encoding="utf-8") as fh:
        fh.write("read_end\treference\tround\ttrim3\teffective_length\trescued\tremaining\tstatus\n")
        for key in sorted(outcomes):
            oc = outcomes[key]
            if oc.result is None:
                fh.write(f"{key.read_end}\t{key.reference}\tNA\tNA\tNA\tNA\tNA\t{oc.status}\n")
                rows += 1
                continue
            remaining = oc.result.rescued + len(oc.result.unmapped)
            for rec in oc.result.records:
                remaining -= len(rec.reads)
                fh.write(
                    f"{key.read_end}\t{key.reference}\t{rec.trim.round}\t{rec.trim.trim3}\t"
                    f"{rec.effective_length}\t{len(rec.reads)}\t{remaining}\t{oc.status}\n"
                )
                rows += 1
    return rows


def execute(
    config: RunConfig,
    *,
    oracle=None,
    converter=None,
    logger: logging.Logger | None = None,
) -> PipelineResult:
    """
    Run the four rescue chains (R1/R2 x primary/repeat) and merge each into a BED set.

    Configuration problems raise ConfigurationError before any alignment;
    after that, chain failures are reported per chain on the returned
    PipelineResult and never stop the sibling chains.
    """
    logger = logger or _make_logger(config.log_level)
    config.validate()

    start = time.time()
    logger.info(f"Started repeat rescue: {config.exp_id}")
    logger.debug(f"Python version: {sys.version}")
    logger.debug(f"Starting memory: {_get_memory_usage():.1f} MB")

    out_dir = config.out_dir
    out_dir.mkdir()
    for end in READ_ENDS:
        (out_dir / f"R{end}_mapping").mkdir()

    schedule = trim_schedule(config.read_len)
    logger.info(
        f"Read length {config.read_len}: {len(schedule)} round(s), "
        f"trim3={[s.trim3 for s in schedule]}"
    )

    indices = {
        "primary": ReferenceIndex("primary", config.genome_index),
        "repeat": ReferenceIndex("repeat", config.repeat_index),
    }
    oracle = oracle or BowtieOracle(config.bowtie, config.samtools, logger=logger.getChild("bowtie"))
    converter = converter or BamToBed(config.samtools, logger=logger.getChild("intervals"))

    # One immutable batch per read end, shared by its primary and repeat chains
    batches = {end: _load_reads(config, end, logger) for end in READ_ENDS}

    def run_one(key: ChainKey) -> ChainOutcome:
        return _run_chain(
            key, config, indices[key.reference], schedule, batches[key.read_end], oracle, converter, logger
        )

    outcomes: Dict[ChainKey, ChainOutcome] = {}
    if config.jobs == 1:
        for key in CHAINS:
            outcomes[key] = _collect(key, lambda k=key: run_one(k), logger)
    else:
        with ThreadPoolExecutor(max_workers=min(config.jobs, len(CHAINS))) as executor:
            futures = {key: executor.submit(run_one, key) for key in CHAINS}
            for key in CHAINS:
                outcomes[key] = _collect(key, futures[key].result, logger)

    summary = out_dir / f"{config.exp_id}_rescue_summary.tsv"
    write_summary(outcomes, summary)

    for key, oc in outcomes.items():
        if oc.ok:
            logger.info(
                f"{key}: ok, {len(oc.intervals):,} intervals -> {oc.merged_bed} "
                f"({len(oc.result.unmapped):,} reads never placed)"
            )
        else:
            logger.error(f"{key}: {oc.status}: {oc.error}")

    logger.info(f"Final memory usage: {_get_memory_usage():.1f} MB")
    logger.info(f"Completed pipeline in {_elapsed_time(start)}")
    return PipelineResult(outcomes, out_dir, summary)


def _collect(key: ChainKey, get, logger: logging.Logger) -> ChainOutcome:
    # Unexpected errors are reported on the chain's outcome like the known ones
    try:
        return get()
    except Exception as e:
        logger.error(f"{key}: unexpected error: {e}")
        logger.debug(traceback.format_exc())
        return ChainOutcome(key, status="error", error=e)
