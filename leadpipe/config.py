from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from leadpipe.exceptions import ConfigError


def _getenv_int(name: str, default: int) -> int:
    v = os.getenv(name, str(default)).strip()
    try:
        return int(v)
    except ValueError as err:
        raise ValueError(f"Environment variable {name} must be an integer; got {v!r}") from err


def _getenv_float(name: str, default: float) -> float:
    v = os.getenv(name, str(default)).strip()
    try:
        return float(v)
    except ValueError as err:
        raise ValueError(f"Environment variable {name} must be a number; got {v!r}") from err


def _getenv_str(name: str, default: str) -> str:
    return os.getenv(name, default).strip()


def _getenv_opt(name: str) -> str | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    return raw.strip() or None


# Load .env from project root if present
ROOT = Path(__file__).resolve().parents[1]
load_dotenv(ROOT / ".env", override=False)

DEFAULT_DB_URL = f"sqlite:///{(ROOT / 'dev.db').as_posix()}"

# -------------------------------
# Stages and their queues
# -------------------------------
STAGE_IMAGE_EXTRACTION = "image-extraction"
STAGE_CONTACT_ENRICHMENT = "contact-enrichment"
STAGE_MESSAGE_GENERATION = "message-generation"

STAGES: tuple[str, ...] = (
    STAGE_IMAGE_EXTRACTION,
    STAGE_CONTACT_ENRICHMENT,
    STAGE_MESSAGE_GENERATION,
)

# Minimum company revenue (USD) for a contact to receive outreach
REVENUE_MIN_FILTER = 2_000_000


@dataclass(frozen=True)
class QueueConfig:
    redis_url: str
    key_prefix: str
    image_queue: str
    contact_queue: str
    message_queue: str
    rq_queue: str

    def for_stage(self, stage: str) -> str:
        mapping = {
            STAGE_IMAGE_EXTRACTION: self.image_queue,
            STAGE_CONTACT_ENRICHMENT: self.contact_queue,
            STAGE_MESSAGE_GENERATION: self.message_queue,
        }
        try:
            return mapping[stage]
        except KeyError as err:
            raise ValueError(f"Unknown stage {stage!r}; expected one of {STAGES}") from err

    def stage_for(self, queue: str) -> str | None:
        for stage in STAGES:
            if self.for_stage(stage) == queue:
                return stage
        return None


@dataclass(frozen=True)
class PipelineConfig:
    batch_size: int
    vt_seconds: int
    max_workers: int
    revenue_min: int
    job_timeout_seconds: int


@dataclass(frozen=True)
class DirectoryConfig:
    base_url: str
    username: str | None
    password: str | None
    token_ttl_seconds: int
    timeout_seconds: float
    wide_radius_miles: int
    narrow_radius_miles: int


@dataclass(frozen=True)
class OcrConfig:
    api_url: str
    api_key: str | None
    timeout_seconds: float


@dataclass(frozen=True)
class LLMConfig:
    api_key: str | None
    api_base: str | None
    extraction_model: str
    message_model: str
    max_tokens: int
    timeout_seconds: float


@dataclass(frozen=True)
class StorageConfig:
    public_base_url: str | None
    signing_secret: str | None
    signed_url_ttl_seconds: int


@dataclass(frozen=True)
class TriggerConfig:
    invoke_base_url: str | None
    service_api_key: str | None
    timeout_seconds: float
    thresholds: dict[str, int] = field(default_factory=dict)
    default_threshold: int = 5

    def threshold_for(self, queue: str) -> int:
        return self.thresholds.get(queue, self.default_threshold)


@dataclass(frozen=True)
class OutreachConfig:
    sender_name: str
    firm_name: str
    firm_pitch: str


@dataclass(frozen=True)
class AppConfig:
    db_url: str
    queue: QueueConfig
    pipeline: PipelineConfig
    directory: DirectoryConfig
    ocr: OcrConfig
    llm: LLMConfig
    storage: StorageConfig
    trigger: TriggerConfig
    outreach: OutreachConfig


def _threshold_env_name(queue: str) -> str:
    return "TRIGGER_THRESHOLD_" + queue.upper().replace("-", "_")


def load_settings() -> AppConfig:
    queue = QueueConfig(
        redis_url=_getenv_str("RQ_REDIS_URL", "redis://127.0.0.1:6379/0"),
        key_prefix=_getenv_str("QUEUE_KEY_PREFIX", "pgq"),
        image_queue=_getenv_str("IMAGE_QUEUE_NAME", "image-processing"),
        contact_queue=_getenv_str("CONTACT_QUEUE_NAME", "contact-enrichment"),
        message_queue=_getenv_str("MESSAGE_QUEUE_NAME", "email-generation"),
        rq_queue=_getenv_str("RQ_QUEUE", "pipeline"),
    )
    batch_size = _getenv_int("PIPELINE_BATCH_SIZE", 5)
    pipeline = PipelineConfig(
        batch_size=batch_size,
        vt_seconds=_getenv_int("PIPELINE_VT_SECONDS", 60),
        max_workers=_getenv_int("PIPELINE_MAX_WORKERS", batch_size),
        revenue_min=_getenv_int("REVENUE_MIN_FILTER", REVENUE_MIN_FILTER),
        job_timeout_seconds=_getenv_int("PIPELINE_JOB_TIMEOUT_SECONDS", 600),
    )
    directory = DirectoryConfig(
        base_url=_getenv_str("DIRECTORY_BASE_URL", "https://api.zoominfo.com").rstrip("/"),
        username=_getenv_opt("DIRECTORY_USERNAME"),
        password=_getenv_opt("DIRECTORY_PASSWORD"),
        token_ttl_seconds=_getenv_int("DIRECTORY_TOKEN_TTL_SECONDS", 3600),
        timeout_seconds=_getenv_float("DIRECTORY_TIMEOUT_SECONDS", 20.0),
        wide_radius_miles=_getenv_int("DIRECTORY_WIDE_RADIUS_MILES", 50),
        narrow_radius_miles=_getenv_int("DIRECTORY_NARROW_RADIUS_MILES", 10),
    )
    ocr = OcrConfig(
        api_url=_getenv_str("VISION_API_URL", "https://vision.googleapis.com/v1/images:annotate"),
        api_key=_getenv_opt("VISION_API_KEY"),
        timeout_seconds=_getenv_float("VISION_TIMEOUT_SECONDS", 30.0),
    )
    llm = LLMConfig(
        api_key=_getenv_opt("OPENAI_API_KEY"),
        api_base=_getenv_opt("OPENAI_API_BASE"),
        extraction_model=_getenv_str("LLM_EXTRACTION_MODEL", "gpt-4.1-mini"),
        message_model=_getenv_str("LLM_MESSAGE_MODEL", "gpt-4.1-mini"),
        max_tokens=_getenv_int("LLM_MAX_TOKENS", 1024),
        timeout_seconds=_getenv_float("LLM_TIMEOUT_SECONDS", 60.0),
    )
    storage = StorageConfig(
        public_base_url=_getenv_opt("STORAGE_PUBLIC_BASE_URL"),
        signing_secret=_getenv_opt("STORAGE_SIGNING_SECRET"),
        signed_url_ttl_seconds=_getenv_int("STORAGE_SIGNED_URL_TTL_SECONDS", 60),
    )
    thresholds = {
        name: _getenv_int(_threshold_env_name(name), 5)
        for name in (queue.image_queue, queue.contact_queue, queue.message_queue)
    }
    trigger = TriggerConfig(
        invoke_base_url=(_getenv_opt("STAGE_INVOKE_BASE_URL") or "").rstrip("/") or None,
        service_api_key=_getenv_opt("SERVICE_API_KEY"),
        timeout_seconds=_getenv_float("TRIGGER_TIMEOUT_SECONDS", 5.0),
        thresholds=thresholds,
        default_threshold=_getenv_int("TRIGGER_THRESHOLD_DEFAULT", 5),
    )
    outreach = OutreachConfig(
        sender_name=_getenv_str("OUTREACH_SENDER_NAME", "Izzy"),
        firm_name=_getenv_str("OUTREACH_FIRM_NAME", "Good Hope Advisors"),
        firm_pitch=_getenv_str(
            "OUTREACH_FIRM_PITCH",
            "helps business owners with exit planning and selling their businesses",
        ),
    )
    return AppConfig(
        db_url=_getenv_str("DATABASE_URL", DEFAULT_DB_URL),
        queue=queue,
        pipeline=pipeline,
        directory=directory,
        ocr=ocr,
        llm=llm,
        storage=storage,
        trigger=trigger,
        outreach=outreach,
    )


def require_stage_credentials(cfg: AppConfig, stage: str) -> None:
    """
    Fail fast when a stage is invoked without the credentials it needs.

    Raised before any queue interaction so that unconfigured deployments
    never claim (and hide) messages they cannot process.
    """
    missing: list[str] = []
    if stage == STAGE_IMAGE_EXTRACTION:
        if not cfg.ocr.api_key:
            missing.append("VISION_API_KEY")
        if not cfg.llm.api_key:
            missing.append("OPENAI_API_KEY")
        if not cfg.storage.public_base_url:
            missing.append("STORAGE_PUBLIC_BASE_URL")
        if not cfg.storage.signing_secret:
            missing.append("STORAGE_SIGNING_SECRET")
    elif stage == STAGE_CONTACT_ENRICHMENT:
        if not cfg.directory.username:
            missing.append("DIRECTORY_USERNAME")
        if not cfg.directory.password:
            missing.append("DIRECTORY_PASSWORD")
    elif stage == STAGE_MESSAGE_GENERATION:
        if not cfg.llm.api_key:
            missing.append("OPENAI_API_KEY")
    else:
        raise ConfigError(f"Unknown stage {stage!r}; expected one of {STAGES}")

    if missing:
        raise ConfigError(f"Missing environment variable(s) for {stage}: {', '.join(missing)}")


def configure_logging() -> None:
    """Entry-point logging setup; library modules only call getLogger()."""
    if logging.getLogger().handlers:
        return
    level = _getenv_str("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


__all__ = [
    "QueueConfig",
    "PipelineConfig",
    "DirectoryConfig",
    "OcrConfig",
    "LLMConfig",
    "StorageConfig",
    "TriggerConfig",
    "OutreachConfig",
    "AppConfig",
    "STAGES",
    "STAGE_IMAGE_EXTRACTION",
    "STAGE_CONTACT_ENRICHMENT",
    "STAGE_MESSAGE_GENERATION",
    "REVENUE_MIN_FILTER",
    "load_settings",
    "require_stage_credentials",
    "configure_logging",
]
