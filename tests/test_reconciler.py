"""
Tests for merging extraction batches into the master dataset
"""
from datetime import timedelta
import logging

from conftest import NOW, make_project
from models import GenomeMetadata, MasterDataset, TaxonomicDomain
from processing import has_changed, reconcile


A = TaxonomicDomain.ARCHAEA
B = TaxonomicDomain.BACTERIA


def _dataset(*projects) -> MasterDataset:
    return MasterDataset(projects={p.id: p for p in projects}, last_updated="2024-06-01T00:00:00.000Z")


class TestReconcile:
    """合并与变更检测"""

    def test_first_run_inserts_everything(self):
        batch = [make_project("b1"), make_project("b2"), make_project("b3"), make_project("a1", domain=A)]

        merged, stats = reconcile(MasterDataset.empty(), batch, now=NOW)

        assert merged.total_count == 4
        assert stats.new_count == 4
        assert stats.updated_count == 0
        assert merged.last_merge_stats == stats
        assert merged.last_updated == "2024-06-15T12:00:00.000Z"

    def test_changed_record_keeps_first_submission_date(self):
        existing = _dataset(make_project("X", gene_count=100, submission_date="2020-03-01T00:00:00.000Z"))
        incoming = make_project("X", gene_count=150, submission_date="2019-01-01T00:00:00.000Z")

        merged, stats = reconcile(existing, [incoming], now=NOW)

        record = merged.projects["X"]
        assert record.gene_count == 150
        assert record.submission_date == "2020-03-01T00:00:00.000Z"
        assert stats.updated_count == 1
        assert stats.new_count == 0

    def test_untracked_changes_are_ignored(self):
        original = make_project("X", extracted_at="2024-06-01T00:00:00.000Z")
        existing = _dataset(original)
        incoming = make_project("X", extracted_at="2024-06-15T12:00:00.000Z")

        merged, stats = reconcile(existing, [incoming], now=NOW)

        assert stats.unchanged_count == 1
        assert stats.updated_count == 0
        assert merged.projects["X"] is original
        assert merged.last_updated == existing.last_updated

    def test_merge_is_idempotent(self):
        existing = _dataset(make_project("X", gene_count=100), make_project("Y", domain=A))
        batch = [make_project("X", gene_count=200), make_project("Z"), make_project("Y", domain=A, status="retired")]

        once, first = reconcile(existing, batch, now=NOW)
        twice, second = reconcile(once, batch, now=NOW + timedelta(hours=1))

        assert (first.new_count, first.updated_count) == (1, 2)
        assert (second.new_count, second.updated_count) == (0, 0)
        assert twice.projects == once.projects
        assert twice.last_updated == once.last_updated

    def test_input_dataset_is_not_mutated(self):
        existing = _dataset(make_project("X", gene_count=100))
        reconcile(existing, [make_project("X", gene_count=5), make_project("N")], now=NOW)
        assert set(existing.projects) == {"X"}
        assert existing.projects["X"].gene_count == 100

    def test_duplicate_ids_do_not_depend_on_batch_order(self):
        batch = [make_project("X", gene_count=1), make_project("X", gene_count=2), make_project("Y")]

        forward, forward_stats = reconcile(MasterDataset.empty(), batch, now=NOW)
        backward, backward_stats = reconcile(MasterDataset.empty(), list(reversed(batch)), now=NOW)

        assert forward_stats.new_count == 2
        assert forward.projects == backward.projects
        assert list(forward.projects) == list(backward.projects)
        assert forward_stats == backward_stats

    def test_latest_observation_wins_among_duplicates(self):
        older = make_project("X", gene_count=900, extracted_at="2024-06-14T12:00:00.000Z")
        newer = make_project("X", gene_count=100, extracted_at="2024-06-15T12:00:00.000Z")

        for batch in ([older, newer], [newer, older]):
            merged, _ = reconcile(MasterDataset.empty(), batch, now=NOW)
            assert merged.projects["X"].gene_count == 100

    def test_domain_change_is_logged(self, caplog):
        existing = _dataset(make_project("X", domain=B))

        with caplog.at_level(logging.WARNING):
            merged, stats = reconcile(existing, [make_project("X", domain=A)], now=NOW)

        assert stats.updated_count == 1
        assert merged.projects["X"].domain == A
        assert "moved from Bacteria to Archaea" in caplog.text


def test_metadata_is_compared_structurally():
    left = make_project("X")
    right = left.model_copy(update={"metadata": GenomeMetadata(domain=B, genus="Escherichia", species="coli")})
    assert not has_changed(left, right)

    changed = left.model_copy(update={"metadata": GenomeMetadata(domain=B, genus="Escherichia", strain="K-12")})
    assert has_changed(left, changed)
