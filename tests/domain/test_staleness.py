from __future__ import annotations

from datetime import timedelta

from stalewatch.domain.graph import AssetGraph
from stalewatch.domain.model import Fingerprint, MaterializationRecord, StaleReason
from stalewatch.domain.staleness import StalenessEvaluator
from tests.support.assets import T0, asset, chain_records, record


def _records(*items: MaterializationRecord) -> dict[str, MaterializationRecord]:
    return {item.asset_key: item for item in items}


def test_cold_start_marks_every_asset_stale() -> None:
    graph = AssetGraph.build([asset("A"), asset("B", "A")])

    report = StalenessEvaluator().evaluate(graph, {})

    assert report.reason_for("A") is StaleReason.NEVER_MATERIALIZED
    assert report.reason_for("B") is StaleReason.NEVER_MATERIALIZED
    assert report.fingerprint_of("A") is None


def test_consistent_records_are_fresh() -> None:
    definitions = [asset("A"), asset("B", "A"), asset("C", "A")]
    graph = AssetGraph.build(definitions)

    report = StalenessEvaluator().evaluate(graph, _records(*chain_records(definitions)))

    assert report.stale == frozenset()
    assert report.fingerprint_of("B") is not None


def test_code_version_change_propagates_downstream() -> None:
    definitions = [asset("A"), asset("B", "A"), asset("C", "B")]
    records = _records(*chain_records(definitions))
    graph = AssetGraph.build([asset("A", code_version="2"), asset("B", "A"), asset("C", "B")])

    report = StalenessEvaluator().evaluate(graph, records)

    assert report.reason_for("A") is StaleReason.CODE_VERSION_CHANGED
    assert report.reason_for("B") is StaleReason.UPSTREAM_STALE
    assert report.reason_for("C") is StaleReason.UPSTREAM_STALE


def test_newer_upstream_materialization_makes_consumer_stale() -> None:
    definitions = [asset("A"), asset("B", "A")]
    first_a, first_b = chain_records(definitions)
    rerun_a = record("A", completed_at=T0 + timedelta(minutes=5))

    report = StalenessEvaluator().evaluate(
        AssetGraph.build(definitions),
        _records(rerun_a, first_b),
    )

    assert first_a.fingerprint != rerun_a.fingerprint
    assert not report.is_stale("A")
    assert report.reason_for("B") is StaleReason.UPSTREAM_CHANGED


def test_invalidated_record_is_stale() -> None:
    definitions = [asset("A"), asset("B", "A")]
    record_a, record_b = chain_records(definitions)

    report = StalenessEvaluator().evaluate(
        AssetGraph.build(definitions),
        _records(record_a.invalidate(), record_b),
    )

    assert report.reason_for("A") is StaleReason.INVALIDATED
    assert report.reason_for("B") is StaleReason.UPSTREAM_STALE


def test_upstream_added_later_makes_consumer_stale() -> None:
    record_b = record("B")
    graph = AssetGraph.build([asset("A"), asset("B", "A")])

    report = StalenessEvaluator().evaluate(graph, _records(record("A"), record_b))

    assert report.reason_for("B") is StaleReason.UPSTREAM_CHANGED


def test_removed_upstream_is_not_compared() -> None:
    definitions = [asset("A"), asset("B", "A")]
    _record_a, record_b = chain_records(definitions)

    report = StalenessEvaluator().evaluate(AssetGraph.build([asset("B")]), _records(record_b))

    assert report.stale == frozenset()


def test_diamond_is_decided_in_one_pass() -> None:
    definitions = [asset("A"), asset("B", "A"), asset("C", "A"), asset("D", "B", "C")]
    records = _records(*chain_records(definitions))
    records["C"] = record(
        "C",
        completed_at=T0 + timedelta(minutes=1),
        upstream={"A": records["A"].fingerprint},
    )

    report = StalenessEvaluator().evaluate(AssetGraph.build(definitions), records)

    assert report.stale == frozenset({"D"})
    assert report.reason_for("D") is StaleReason.UPSTREAM_CHANGED


def test_fingerprint_depends_on_every_input() -> None:
    upstream = {"A": Fingerprint(digest="a" * 64)}
    base = Fingerprint.combine(code_version="1", data_version="x", upstream=upstream)

    assert base == Fingerprint.combine(code_version="1", data_version="x", upstream=upstream)
    assert base != Fingerprint.combine(code_version="2", data_version="x", upstream=upstream)
    assert base != Fingerprint.combine(code_version="1", data_version="y", upstream=upstream)
    assert base != Fingerprint.combine(code_version="1", data_version="x", upstream={})
    assert str(base) == base.digest[:12]
