import pytest

from conftest import make_reads
from represcue.fastq import iter_fastq, load_batch, write_batch, write_fastq
from represcue.represcueClasses import ReadBatch


@pytest.mark.parametrize("name", ["r.fastq", "r.fastq.gz"])
def test_write_then_load(tmp_path, name):
    reads = make_reads(3, length=12)
    path = tmp_path / name
    assert write_fastq(reads, path) == 3
    batch = load_batch(path)
    assert batch.reads == tuple(reads)
    assert batch.path == path
    assert len(batch) == 3


def test_id_is_first_header_token(tmp_path):
    path = tmp_path / "r.fastq"
    path.write_text("@SRR1.1 1/1 length=4\nACGT\n+SRR1.1\nIIII\n")
    (r,) = list(iter_fastq(path))
    assert r.id == "SRR1.1"
    assert r.header == "SRR1.1 1/1 length=4"


def test_truncated_record(tmp_path):
    path = tmp_path / "bad.fastq"
    path.write_text("@r1\nACGT\n+\n")
    with pytest.raises(ValueError, match="truncated"):
        list(iter_fastq(path))


def test_length_mismatch(tmp_path):
    path = tmp_path / "bad.fastq"
    path.write_text("@r1\nACGT\n+\nIII\n")
    with pytest.raises(ValueError, match="mismatch"):
        list(iter_fastq(path))


def test_not_fastq(tmp_path):
    path = tmp_path / "bad.fastq"
    path.write_text(">r1\nACGT\n+\nIIII\n")
    with pytest.raises(ValueError, match="malformed"):
        list(iter_fastq(path))


def test_write_batch_binds_path(tmp_path):
    batch = ReadBatch(tuple(make_reads(2)))
    bound = write_batch(batch, tmp_path / "sub" / "x.fastq")
    assert bound.path == tmp_path / "sub" / "x.fastq"
    assert bound.reads == batch.reads
    assert load_batch(bound.path).reads == batch.reads
