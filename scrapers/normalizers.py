"""
Upstream Record Normalizers
上游门户历史上出现过多种记录格式，每种格式一个归一化函数，按字段探测选择
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
import math
import re
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import ValidationError

from models import GenomeMetadata, GenomeProject, GenomeUrls, TaxonomicDomain
from utils.exceptions import RecordParseError


logger = logging.getLogger(__name__)

_TAXONOMY_FIELDS = ("phylum", "class", "order", "family", "genus", "species", "strain")

_GENUS_SPECIES = re.compile(r"([A-Z][a-z]+\s+[a-z]+)")
_GENUS_ONLY = re.compile(r"([A-Z][a-z]+)")


@dataclass(frozen=True)
class NormalizationContext:
    """一页记录共享的归一化上下文"""

    domain: TaxonomicDomain
    base_url: str
    extracted_at: str


@dataclass(frozen=True)
class UpstreamShape:
    """一种已知的上游记录格式"""

    version: str
    probe: Callable[[Mapping[str, Any]], bool]
    normalize: Callable[[Mapping[str, Any], NormalizationContext], GenomeProject]


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    # 1e400 / Infinity / NaN 都当作缺失
    if not math.isfinite(number):
        return None
    try:
        return int(number)
    except (OverflowError, ValueError):
        return None


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def estimate_gene_count(sequence_length: Optional[int]) -> Optional[int]:
    """约 1000 bp 一个基因 (细菌基因组的粗略经验值)"""
    if not sequence_length or sequence_length <= 0:
        return None
    return int(sequence_length / 1000 + 0.5)


def extract_organism_name(filename: Optional[str], label: Optional[str] = None) -> str:
    """从文件名/标签中提取 'Genus species'"""
    source = label or filename or ""
    clean = re.sub(r"[_.]", " ", source)
    clean = re.sub(r"\d+", "", clean)
    clean = re.sub(r"\s+", " ", clean).strip()

    for pattern in (_GENUS_SPECIES, _GENUS_ONLY):
        match = pattern.search(clean)
        if match:
            return match.group(1)

    fallback = " ".join(clean.split(" ")[:2]).strip()
    return fallback or "Unknown organism"


def infer_sequence_type(filename: Optional[str]) -> str:
    name = (filename or "").lower()
    if "scaffold" in name:
        return "Scaffolds"
    if "contig" in name:
        return "Contigs"
    if "chromosome" in name:
        return "Chromosome"
    if "plasmid" in name:
        return "Plasmid"
    return "Genome Assembly"


def _resolve_domain(value: Any, fallback: TaxonomicDomain) -> TaxonomicDomain:
    text = _text(value)
    if not text:
        return fallback
    try:
        return TaxonomicDomain.parse(text)
    except ValueError:
        return fallback


def _taxonomy(raw: Mapping[str, Any], domain: TaxonomicDomain, organism: str) -> Dict[str, Any]:
    taxonomy: Dict[str, Any] = {"domain": domain}
    for field in _TAXONOMY_FIELDS:
        value = _text(raw.get(field))
        if value:
            taxonomy[field] = value

    parts = organism.split(" ")
    if "genus" not in taxonomy and parts and parts[0] and organism != "Unknown organism":
        taxonomy["genus"] = parts[0]
    if "species" not in taxonomy and len(parts) > 1 and parts[1]:
        taxonomy["species"] = parts[1]
    return taxonomy


def _require_id(raw: Mapping[str, Any], *keys: str) -> str:
    record_id = _text(_first(raw, *keys))
    if record_id is None:
        raise RecordParseError("record has no id", record_id=None)
    return record_id


def _build(record_id: str, **fields: Any) -> GenomeProject:
    try:
        return GenomeProject(id=record_id, **fields)
    except ValidationError as e:
        raise RecordParseError(f"record {record_id} failed validation: {e}", record_id=record_id) from e


# --- files-search shape: {"id", "filename", "label", "date_created", "file_size", ...}

def _probe_files(raw: Mapping[str, Any]) -> bool:
    return "filename" in raw or "file_size" in raw


def _normalize_files(raw: Mapping[str, Any], ctx: NormalizationContext) -> GenomeProject:
    record_id = _require_id(raw, "id", "_id")
    filename = _text(raw.get("filename"))
    label = _text(raw.get("label"))

    organism = _text(raw.get("organism_name")) or extract_organism_name(filename, label)
    sequence_length = _as_int(raw.get("file_size"))

    return _build(
        record_id,
        name=label or filename or organism,
        organism=organism,
        sequence_type=infer_sequence_type(filename),
        status=_text(raw.get("status")) or "available",
        submission_date=_text(raw.get("date_created")) or ctx.extracted_at,
        release_date=_text(raw.get("date_modified")),
        sequence_length=sequence_length,
        gene_count=estimate_gene_count(sequence_length),
        metadata=GenomeMetadata(**_taxonomy(raw, ctx.domain, organism)),
        urls=GenomeUrls(
            portal=f"{ctx.base_url}/file/{record_id}",
            download=_text(raw.get("download_url")),
        ),
        extracted_at=ctx.extracted_at,
    )


# --- organism shape: {"organism_id", "organism_name", ...}

def _probe_organism(raw: Mapping[str, Any]) -> bool:
    return "organism_id" in raw


def _normalize_organism(raw: Mapping[str, Any], ctx: NormalizationContext) -> GenomeProject:
    record_id = _require_id(raw, "organism_id")
    organism = _text(raw.get("organism_name")) or "Unknown organism"
    sequence_length = _as_int(_first(raw, "sequence_length", "genome_size"))
    gene_count = _as_int(raw.get("gene_count"))
    domain = _resolve_domain(raw.get("domain"), ctx.domain)

    return _build(
        record_id,
        name=_text(raw.get("project_name")) or organism,
        organism=organism,
        sequence_type=_text(raw.get("sequence_type")) or "Genome Assembly",
        status=_text(raw.get("status")) or "available",
        submission_date=_text(_first(raw, "submission_date", "date_created")) or ctx.extracted_at,
        release_date=_text(raw.get("release_date")),
        sequence_length=sequence_length,
        gene_count=gene_count if gene_count is not None else estimate_gene_count(sequence_length),
        metadata=GenomeMetadata(**_taxonomy(raw, domain, organism)),
        urls=GenomeUrls(
            portal=_text(raw.get("portal_url")) or f"{ctx.base_url}/file/{record_id}",
            download=_text(raw.get("download_url")),
        ),
        extracted_at=ctx.extracted_at,
    )


# --- project shape: {"id", "name", "submissionDate" | "submission_date", "metadata": {...}, ...}

def _probe_project(raw: Mapping[str, Any]) -> bool:
    return "id" in raw or "name" in raw


def _normalize_project(raw: Mapping[str, Any], ctx: NormalizationContext) -> GenomeProject:
    name = _text(raw.get("name"))
    record_id = _text(raw.get("id"))
    if record_id is None:
        raise RecordParseError(f"record {name!r} has no id", record_id=None)

    metadata = raw.get("metadata") if isinstance(raw.get("metadata"), Mapping) else {}
    urls = raw.get("urls") if isinstance(raw.get("urls"), Mapping) else {}
    organism = _text(raw.get("organism")) or name or "Unknown organism"
    domain = _resolve_domain(_first(metadata, "domain") or raw.get("domain"), ctx.domain)
    sequence_length = _as_int(_first(raw, "sequenceLength", "sequence_length"))
    gene_count = _as_int(_first(raw, "geneCount", "gene_count"))

    taxonomy_source: Dict[str, Any] = dict(raw)
    taxonomy_source.update(metadata)

    return _build(
        record_id,
        name=name or organism,
        organism=organism,
        sequence_type=_text(_first(raw, "sequenceType", "sequence_type")) or "Genome Assembly",
        status=_text(raw.get("status")) or "available",
        submission_date=_text(_first(raw, "submissionDate", "submission_date")) or ctx.extracted_at,
        release_date=_text(_first(raw, "releaseDate", "release_date")),
        sequence_length=sequence_length,
        gene_count=gene_count if gene_count is not None else estimate_gene_count(sequence_length),
        metadata=GenomeMetadata(**_taxonomy(taxonomy_source, domain, organism)),
        urls=GenomeUrls(
            portal=_text(_first(urls, "portal")) or f"{ctx.base_url}/file/{record_id}",
            download=_text(_first(urls, "download")),
        ),
        extracted_at=ctx.extracted_at,
    )


# 探测顺序即优先级：文件检索格式 > 旧版 organism 格式 > 项目格式
UPSTREAM_SHAPES: List[UpstreamShape] = [
    UpstreamShape(version="files-v1", probe=_probe_files, normalize=_normalize_files),
    UpstreamShape(version="organism-v0", probe=_probe_organism, normalize=_normalize_organism),
    UpstreamShape(version="project-v2", probe=_probe_project, normalize=_normalize_project),
]


def detect_shape(raw: Any) -> UpstreamShape:
    """按字段探测记录格式"""
    if not isinstance(raw, Mapping):
        raise RecordParseError(f"record is not an object: {type(raw).__name__}")
    for shape in UPSTREAM_SHAPES:
        if shape.probe(raw):
            return shape
    raise RecordParseError("record has neither an id nor a name field")


def normalize_record(raw: Any, ctx: NormalizationContext) -> GenomeProject:
    """
    将一条上游原始记录归一化为 GenomeProject

    Raises:
        RecordParseError: 记录无法识别、缺少 id 或归一化过程中出现任何异常
    """
    shape = detect_shape(raw)
    try:
        return shape.normalize(raw, ctx)
    except RecordParseError:
        raise
    except Exception as e:
        record_id = _text(_first(raw, "id", "_id", "organism_id"))
        raise RecordParseError(
            f"{shape.version} record {record_id} could not be normalized: {type(e).__name__}: {e}",
            record_id=record_id,
        ) from e
