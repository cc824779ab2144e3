"""
Tests for upstream record normalization
"""
import pytest

from models import TaxonomicDomain
from scrapers import NormalizationContext, detect_shape, normalize_record
from scrapers.normalizers import estimate_gene_count, extract_organism_name, infer_sequence_type
from utils.exceptions import RecordParseError


CTX = NormalizationContext(
    domain=TaxonomicDomain.ARCHAEA,
    base_url="https://files.jgi.doe.gov",
    extracted_at="2024-06-15T12:00:00.000Z",
)


class TestShapeDetection:
    """上游格式探测"""

    def test_files_shape(self):
        assert detect_shape({"id": "f1", "filename": "x.fna"}).version == "files-v1"

    def test_organism_shape(self):
        assert detect_shape({"organism_id": 7, "organism_name": "Haloferax volcanii"}).version == "organism-v0"

    def test_project_shape(self):
        assert detect_shape({"id": "p1", "name": "Project"}).version == "project-v2"

    def test_record_without_id_or_name_is_rejected(self):
        with pytest.raises(RecordParseError):
            detect_shape({"status": "available"})

    def test_non_object_is_rejected(self):
        with pytest.raises(RecordParseError):
            normalize_record(["not", "a", "record"], CTX)


class TestFilesShape:
    """文件检索格式"""

    def test_derives_fields_from_filename(self):
        raw = {
            "id": "5f0c",
            "filename": "Methanococcus_maripaludis_S2.scaffolds.fasta",
            "date_created": "2023-04-01T10:00:00Z",
            "date_modified": "2023-05-01T10:00:00Z",
            "file_size": 1661137,
            "download_url": "https://files.jgi.doe.gov/download/5f0c",
        }

        project = normalize_record(raw, CTX)

        assert project.id == "5f0c"
        assert project.organism == "Methanococcus maripaludis"
        assert project.sequence_type == "Scaffolds"
        assert project.sequence_length == 1661137
        assert project.gene_count == 1661
        assert project.status == "available"
        assert project.submission_date == "2023-04-01T10:00:00Z"
        assert project.metadata.domain == TaxonomicDomain.ARCHAEA
        assert project.metadata.genus == "Methanococcus"
        assert project.metadata.species == "maripaludis"
        assert project.urls.portal == "https://files.jgi.doe.gov/file/5f0c"
        assert project.urls.download == "https://files.jgi.doe.gov/download/5f0c"
        assert project.extracted_at == CTX.extracted_at

    def test_missing_submission_date_uses_run_time(self):
        project = normalize_record({"id": "a", "filename": "Sulfolobus.fna"}, CTX)
        assert project.submission_date == CTX.extracted_at

    def test_missing_id_is_rejected(self):
        with pytest.raises(RecordParseError):
            normalize_record({"filename": "Sulfolobus.fna"}, CTX)

    @pytest.mark.parametrize("size", [float("inf"), float("-inf"), float("nan"), "1e400"])
    def test_non_finite_size_is_treated_as_missing(self, size):
        project = normalize_record({"id": "big", "filename": "Sulfolobus.fna", "file_size": size}, CTX)
        assert project.sequence_length is None
        assert project.gene_count is None

    def test_unexpected_failure_becomes_parse_error(self):
        class FlakyRecord(dict):
            def get(self, key, default=None):
                if key == "file_size":
                    raise RuntimeError("decoder glitch")
                return super().get(key, default)

        with pytest.raises(RecordParseError) as excinfo:
            normalize_record(FlakyRecord(id="x1", filename="Sulfolobus.fna"), CTX)

        assert excinfo.value.record_id == "x1"
        assert "decoder glitch" in str(excinfo.value)


class TestOrganismShape:
    """旧版 organism 格式"""

    def test_upstream_gene_count_wins(self):
        raw = {
            "organism_id": 42,
            "organism_name": "Haloferax volcanii",
            "sequence_length": 4000000,
            "gene_count": 3900,
            "domain": "archaea",
            "phylum": "Euryarchaeota",
        }

        project = normalize_record(raw, CTX)

        assert project.id == "42"
        assert project.gene_count == 3900
        assert project.metadata.phylum == "Euryarchaeota"
        assert project.metadata.domain == TaxonomicDomain.ARCHAEA


class TestProjectShape:
    """项目格式 (驼峰或下划线字段)"""

    def test_camel_case_fields(self):
        raw = {
            "id": "p9",
            "name": "Bacillus subtilis 168",
            "organism": "Bacillus subtilis",
            "sequenceType": "Chromosome",
            "submissionDate": "2022-01-02",
            "sequenceLength": 4215606,
            "metadata": {"domain": "Bacteria", "class": "Bacilli"},
        }

        project = normalize_record(raw, CTX)

        assert project.sequence_type == "Chromosome"
        assert project.gene_count == 4216
        assert project.metadata.domain == TaxonomicDomain.BACTERIA
        assert project.metadata.class_ == "Bacilli"

    def test_name_without_id_is_rejected(self):
        with pytest.raises(RecordParseError):
            normalize_record({"name": "Orphan record"}, CTX)


def test_helpers():
    assert estimate_gene_count(None) is None
    assert estimate_gene_count(0) is None
    assert estimate_gene_count(1500) == 2
    assert infer_sequence_type("x_contigs.fa") == "Contigs"
    assert infer_sequence_type("pX_plasmid.fa") == "Plasmid"
    assert infer_sequence_type("assembly.fa") == "Genome Assembly"
    assert extract_organism_name(None) == "Unknown organism"
