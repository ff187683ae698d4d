"""
Ingestion configuration loader.

Global knobs come from the environment (.env is loaded by the worker);
the per-source registry is read from config/sources.yaml.
"""
import os
import yaml
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "JobSearchEngineBot/0.1 (contact: unknown)"
DEFAULT_SOURCES_FILE = Path(__file__).parent.parent / "config" / "sources.yaml"

# Cache for parsed sources files (path -> SourcesConfig)
_sources_cache: Dict[str, "SourcesConfig"] = {}


class InfoJobsSource(BaseModel):
    enabled: bool = True
    search_url: str = "https://www.infojobs.com.br/vagas.aspx?palabra=TI"


class StoneSource(BaseModel):
    enabled: bool = False
    search_url: str = "https://trabalheconosco.vagas.com.br/stone"


class WorkdaySource(BaseModel):
    enabled: bool = False
    name: str = "AccentureWorkday"
    company: str = "Accenture"
    base_host: str = "accenture.wd103.myworkdayjobs.com"
    site_path: str = "/pt-BR/AccentureCareers"
    tenant: str = "accenture"
    site_name: str = "AccentureCareers"
    page_size: int = 50
    max_pages_per_run: int = 3
    max_detail_fetch: Optional[int] = 10
    user_agent: Optional[str] = None


class CorporateCareerSource(BaseModel):
    name: str
    type: Optional[str] = None
    enabled: bool = True
    start_url: str = ""
    max_items_per_run: Optional[int] = None
    max_detail_fetch: Optional[int] = None


class JsonLdSource(BaseModel):
    name: str
    enabled: bool = True
    start_url: str = ""
    max_items_per_run: Optional[int] = None
    max_detail_fetch: Optional[int] = None


class GupySource(BaseModel):
    name: str
    enabled: bool = True
    company_base_url: str = ""
    max_items_per_run: Optional[int] = None


class SourcesConfig(BaseModel):
    infojobs: InfoJobsSource = Field(default_factory=InfoJobsSource)
    stone: StoneSource = Field(default_factory=StoneSource)
    workday: WorkdaySource = Field(default_factory=WorkdaySource)
    corporate_careers: List[CorporateCareerSource] = Field(default_factory=list)
    json_ld: List[JsonLdSource] = Field(default_factory=list)
    gupy: List[GupySource] = Field(default_factory=list)


@dataclass
class Settings:
    default_max_items: int = 20
    default_max_detail: int = 20
    expire_after_days: int = 14
    user_agent: str = DEFAULT_USER_AGENT
    http_timeout_seconds: int = 20
    max_retries: int = 3
    initial_backoff_ms: int = 500
    host_interval_seconds: float = 1.0
    samples_path: Optional[str] = None
    database_url: Optional[str] = None
    meili_host: str = "http://localhost:7700"
    meili_key: Optional[str] = None
    meili_index: str = "jobs"
    sources: SourcesConfig = field(default_factory=SourcesConfig)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


def load_sources_config(path: Optional[Path] = None) -> SourcesConfig:
    """Load and validate the sources registry. Missing file -> defaults."""
    config_path = Path(path) if path else DEFAULT_SOURCES_FILE
    cache_key = str(config_path.resolve())

    if cache_key in _sources_cache:
        return _sources_cache[cache_key]

    if not config_path.exists():
        logger.warning(f"[config] Sources file not found: {config_path}. Using defaults.")
        _sources_cache[cache_key] = SourcesConfig()
        return _sources_cache[cache_key]

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}")

    if not isinstance(raw, dict):
        raise ConfigurationError(f"{config_path} must contain a mapping at the top level")

    try:
        sources = SourcesConfig.model_validate(raw.get("sources") or {})
    except ValidationError as e:
        raise ConfigurationError(f"Invalid sources config in {config_path}: {e}")

    logger.info(f"[config] Loaded sources config from {config_path}")
    _sources_cache[cache_key] = sources
    return sources


def clear_config_cache():
    _sources_cache.clear()


def load_settings(sources_file: Optional[str] = None) -> Settings:
    """Build Settings from the environment plus the YAML sources registry."""
    sources_path = sources_file or os.getenv("INGEST_SOURCES_FILE")

    return Settings(
        default_max_items=_env_int("INGEST_MAX_ITEMS_PER_RUN", 20),
        default_max_detail=_env_int("INGEST_MAX_DETAIL_FETCH", 20),
        expire_after_days=_env_int("INGEST_EXPIRE_AFTER_DAYS", 14),
        user_agent=os.getenv("INGEST_USER_AGENT") or DEFAULT_USER_AGENT,
        http_timeout_seconds=_env_int("INGEST_HTTP_TIMEOUT_SECONDS", 20),
        max_retries=_env_int("INGEST_MAX_RETRIES", 3),
        initial_backoff_ms=_env_int("INGEST_INITIAL_BACKOFF_MS", 500),
        host_interval_seconds=_env_float("INGEST_HOST_INTERVAL_SECONDS", 1.0),
        samples_path=os.getenv("INGEST_SAMPLES_PATH") or None,
        database_url=os.getenv("DATABASE_URL") or None,
        meili_host=os.getenv("MEILISEARCH_URL") or os.getenv("MEILI_HOST") or "http://localhost:7700",
        meili_key=os.getenv("MEILISEARCH_KEY") or os.getenv("MEILI_MASTER_KEY") or None,
        meili_index=os.getenv("MEILI_JOBS_INDEX", "jobs"),
        sources=load_sources_config(Path(sources_path) if sources_path else None),
    )
