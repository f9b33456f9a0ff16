import argparse

from .config import RunConfig
from .errors import ConfigurationError
from .pipeline import execute
from .schedule import format_schedule


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Print the trim schedule for a read length
    if args.cmd == "schedule":
        try:
            print(format_schedule(args.read_len))
            return 0
        except ConfigurationError as e:
            print(f"[ERROR] {e}")
            return 2

    # Iterative rescue mapping of both read ends against genome and repeat
    elif args.cmd == "run":
        try:
            config = RunConfig.from_namespace(args)
            result = execute(config)
        except ConfigurationError as e:
            print(f"[ERROR] {e}")
            return 2

        if not result.ok:
            for oc in result.failed:
                print(f"[ERROR] {oc.key}: {oc.status}: {oc.error}")
            return 1
        return 0
    else:
        parser.error("Unknown command")

    return 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="represcue",
        description="Rescue reads spanning repetitive regions by iterative 3' trimming and unique Bowtie mapping."
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser(
        "schedule",
        help="Print the per-round trim schedule for a read length."
    )
    s.add_argument(
        "read_len",
        type=int,
        help="Read length of the FASTQ files."
    )

    r = sub.add_parser(
        "run",
        help="Map R1/R2 against the genome and the repeat with progressive 3' trimming; write BED files."
    )
    r.add_argument(
        "--expid",
        dest="exp_id",
        required=True,
        help="Custom ID for the output directory and files."
    )
    r.add_argument(
        "--rundir",
        dest="run_dir",
        required=True,
        help="Existing directory in which <expid>/ is created. Must not already contain <expid>/."
    )
    r.add_argument(
        "--genome",
        dest="genome_index",
        required=True,
        help="Bowtie index basename of the reference genome (e.g. /refs/genome for /refs/genome.1.ebwt)."
    )
    r.add_argument(
        "--repeat",
        dest="repeat_index",
        required=True,
        help="Bowtie index basename of the isolated repetitive region."
    )
    r.add_argument(
        "--fq1",
        required=True,
        help="FASTQ file of read 1 (.fastq or .fastq.gz)."
    )
    r.add_argument(
        "--fq2",
        required=True,
        help="FASTQ file of read 2 (.fastq or .fastq.gz)."
    )
    r.add_argument(
        "--read-len",
        dest="read_len",
        type=int,
        required=True,
        help="Length of the reads in the FASTQ files."
    )
    r.add_argument(
        "-p", "--threads",
        type=int,
        default=8,
        help="Threads per bowtie call (default 8)."
    )
    r.add_argument(
        "-j", "--jobs",
        type=int,
        default=4,
        help="Number of read-end/reference chains to run at once (default 4; 1 runs them sequentially)."
    )
    r.add_argument(
        "--seed",
        type=int,
        default=123,
        help="Random seed passed to bowtie (default 123)."
    )
    r.add_argument(
        "--timeout",
        dest="round_timeout",
        type=float,
        default=None,
        help="Optional per-round bowtie timeout in seconds. Timed out rounds are not retried."
    )
    r.add_argument(
        "--bowtie",
        default="bowtie",
        help="bowtie executable (default: 'bowtie' on PATH)."
    )
    r.add_argument(
        "--samtools",
        default="samtools",
        help="samtools executable (default: 'samtools' on PATH)."
    )
    # Debugging assistance
    r.add_argument(
        "--log-level",
        default="INFO",
        choices=["ERROR", "WARNING", "INFO", "DEBUG"],
        help="Logging verbosity (default: INFO)."
    )
    return p

if __name__ == "__main__":
    raise SystemExit(main())
