from pathlib import Path
from types import SimpleNamespace

import pytest

from conftest import FakeConverter, make_reads
from represcue import intervals
from represcue.errors import ConversionError
from represcue.intervals import (
    BamToBed, check_round_trip, mapped_read_names, merge_records, read_intervals,
)
from represcue.represcueClasses import ChainKey, IntervalRecord, ReadBatch, RescueRecord, TrimSpec


def _aln(name, chrom="chrI", pos=99, end=148, reverse=False, mapq=255, unmapped=False):
    return SimpleNamespace(
        read_name=name, reference_name=chrom, pos=pos, reference_end=end,
        is_reverse=reverse, mapq=mapq, is_unmapped=unmapped,
    )


def _fake_alignmentfile(alns, called):
    def factory(path, mode):
        called["path"] = path
        called["mode"] = mode

        class Dummy:
            def __iter__(self):
                return iter(alns)

            def close(self):
                called["closed"] = True
        return Dummy()
    return factory


def _record(n, trim3=0, alignments="x.sam"):
    return RescueRecord(TrimSpec(trim3 // 5, 1, trim3), 49 - trim3, ReadBatch(tuple(make_reads(n))), Path(alignments))


def test_read_intervals_bed6(monkeypatch):
    called = {}
    alns = [_aln("read0"), _aln("read1", pos=10, end=44, reverse=True, mapq=42), _aln("x", unmapped=True)]
    monkeypatch.setattr(intervals.bn, "AlignmentFile", _fake_alignmentfile(alns, called))

    ivs = read_intervals("m.bam")
    assert called == {"path": "m.bam", "mode": "rb", "closed": True}
    assert ivs == [
        IntervalRecord("chrI", 99, 148, "read0", 255, "+"),
        IntervalRecord("chrI", 10, 44, "read1", 42, "-"),
    ]
    assert ivs[1].to_bed() == "chrI\t10\t44\tread1\t42\t-"


def test_round_trip_check():
    rec = _record(2)
    good = [IntervalRecord("c", 0, 1, "read0", 0, "+"), IntervalRecord("c", 0, 1, "read1", 0, "+")]
    check_round_trip(rec, good)
    with pytest.raises(ValueError, match="2 rescued reads but 1"):
        check_round_trip(rec, good[:1])
    with pytest.raises(ValueError, match="not rescued"):
        check_round_trip(rec, [good[0], IntervalRecord("c", 0, 1, "other", 0, "+")])
    with pytest.raises(ValueError, match="same read"):
        check_round_trip(rec, [good[0], good[0]])


def test_bam_to_bed_filters_with_samtools(tmp_path, monkeypatch):
    called = {}

    def fake_run(cmd, capture_output, text):
        called["cmd"] = cmd
        return SimpleNamespace(returncode=0, stderr="")

    monkeypatch.setattr(intervals.subprocess, "run", fake_run)
    monkeypatch.setattr(intervals.bn, "AlignmentFile", _fake_alignmentfile([_aln("read0")], {}))

    ivs = BamToBed().convert(_record(1, alignments=tmp_path / "e_R1_50.sam"), tmp_path / "e_MAPPED_R1_50")
    assert called["cmd"] == [
        "samtools", "view", "-h", "-b", "-F", "4",
        "-o", str(tmp_path / "e_MAPPED_R1_50.bam"), str(tmp_path / "e_R1_50.sam"),
    ]
    assert [iv.name for iv in ivs] == ["read0"]


def test_bam_to_bed_empty_record_skips_tools(monkeypatch):
    def boom(*a, **kw):
        raise AssertionError("should not run")
    monkeypatch.setattr(intervals.subprocess, "run", boom)
    assert BamToBed().convert(_record(0), "p") == []


def test_merge_records_writes_round_and_merged_beds(tmp_path):
    key = ChainKey(2, "repeat")
    records = [_record(2, 0), _record(0, 5), _record(1, 10)]
    merged, beds, merged_bed = merge_records(
        key, records, FakeConverter(), read_length=50,
        mapping_dir=tmp_path / "R2_mapping", out_dir=tmp_path, exp_id="e",
    )
    assert [b.name for b in beds] == ["e_REP_MAPPED_R2_50.bed", "e_REP_MAPPED_R2_45.bed", "e_REP_MAPPED_R2_40.bed"]
    assert merged_bed == tmp_path / "e_REP_MAPPED_R2.bed"
    assert [iv.name for iv in merged] == ["read0", "read1", "read0"]
    lines = merged_bed.read_text().splitlines()
    assert lines == [iv.to_bed() for iv in merged]
    assert beds[1].read_text() == ""


def test_merge_records_wraps_converter_failure(tmp_path):
    with pytest.raises(ConversionError) as exc:
        merge_records(
            ChainKey(1, "primary"), [_record(1, 0), _record(1, 5)], FakeConverter(fail_tag="_45"),
            read_length=50, mapping_dir=tmp_path, out_dir=tmp_path, exp_id="e",
        )
    assert exc.value.round_index == 1
    assert "samtools view failed" in str(exc.value)


def test_mapped_read_names_skips_unmapped(monkeypatch):
    called = {}
    alns = [_aln("read0"), _aln("read1", unmapped=True), _aln("read2"), _aln("read0")]
    monkeypatch.setattr(intervals.bn, "AlignmentFile", _fake_alignmentfile(alns, called))

    assert mapped_read_names("r.bam") == {"read0", "read2"}
    assert called["closed"]


def test_round_trip_ignores_mate_suffix():
    reads = make_reads(2)
    reads[0] = reads[0].__class__("read0/1", reads[0].seq, reads[0].qual, "read0/1")
    rec = RescueRecord(TrimSpec(0), 49, ReadBatch(tuple(reads)), Path("x.bam"))
    check_round_trip(rec, [IntervalRecord("c", 0, 1, "read1", 0, "+"), IntervalRecord("c", 0, 1, "read0", 0, "+")])


def test_bam_to_bed_reads_round_bam_directly(tmp_path, monkeypatch):
    def boom(*a, **kw):
        raise AssertionError("samtools should not run")
    called = {}
    monkeypatch.setattr(intervals.subprocess, "run", boom)
    monkeypatch.setattr(intervals.bn, "AlignmentFile", _fake_alignmentfile([_aln("read0")], called))

    ivs = BamToBed().convert(_record(1, alignments=tmp_path / "e_R1_50.bam"), tmp_path / "e_MAPPED_R1_50")
    assert called["path"] == str(tmp_path / "e_R1_50.bam")
    assert [iv.name for iv in ivs] == ["read0"]


def test_filter_mapped_failure_raises(tmp_path, monkeypatch):
    monkeypatch.setattr(
        intervals.subprocess, "run",
        lambda cmd, **kw: SimpleNamespace(returncode=1, stderr="[main_samview] truncated file.\n"),
    )
    with pytest.raises(RuntimeError, match="truncated file"):
        intervals.filter_mapped("samtools", tmp_path / "a.sam", tmp_path / "a.bam")
