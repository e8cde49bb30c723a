from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Optional

from dotenv import dotenv_values

from .logging import get_logger

log = get_logger("config")


def _find_upwards(start_dir: str, filename: str) -> Optional[str]:
    """Return first matching file found when walking up from start_dir.

    Running the server or CLI from a subdirectory (e.g. `src/`) still finds
    the repository-level `.env`.
    """
    d = os.path.abspath(start_dir or ".")
    while True:
        candidate = os.path.join(d, filename)
        if os.path.isfile(candidate):
            return candidate
        parent = os.path.dirname(d)
        if parent == d:
            return None
        d = parent


def _read_dotenv(dotenv_dir: str) -> Dict[str, str]:
    """Return the nearest .env as a mapping without mutating os.environ."""
    path = _find_upwards(dotenv_dir, ".env")
    if not path:
        log.debug(f"No .env found starting from: {os.path.abspath(dotenv_dir)}")
        return {}
    try:
        values = dotenv_values(path, encoding="utf-8")
    except OSError as e:
        log.warning(f"Failed reading .env: {e}")
        return {}
    env = {k: v.strip() for k, v in values.items() if k and v is not None}
    log.debug(f"Loaded {len(env)} key(s) from .env at {path}")
    return env


def _lookup(env: Dict[str, str], key: str) -> Optional[str]:
    v = os.environ.get(key)
    if v is None:
        v = env.get(key)
        if v is None:
            v = env.get(key.lower())
    if v is None:
        return None
    v = v.strip()
    return v or None


def _as_int(raw: Optional[str], default: int, *, key: str, minimum: int = 0) -> int:
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        log.warning(f"{key}={raw!r} is not an integer; using {default}")
        return default
    if value < minimum:
        log.warning(f"{key}={value} is below {minimum}; using {default}")
        return default
    return value


def _as_float(raw: Optional[str], default: float, *, key: str) -> float:
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        log.warning(f"{key}={raw!r} is not a number; using {default}")
        return default


@dataclass(frozen=True)
class ExtractionConfig:
    """Settings shared by acquisition, extraction and usage metering.

    A missing `openai_api_key` is what disables the AI strategy; callers get
    a MISSING_CREDENTIAL error instead of a silent strategy switch.
    """

    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_base_url: Optional[str] = None
    temperature: float = 0.1
    max_tokens: int = 4000
    request_timeout: Optional[float] = None
    ocr_languages: str = "jpn+eng"
    tesseract_config: str = ""
    min_pdf_chars: int = 10
    min_ocr_chars: int = 3
    max_pdf_bytes: int = 10 * 1024 * 1024
    max_image_bytes: int = 5 * 1024 * 1024
    batch_workers: int = 1
    dictionaries_path: Optional[str] = None
    usage_db: Optional[str] = None
    usage_capacity: int = 100
    usd_jpy_rate: float = 150.0

    @property
    def ai_available(self) -> bool:
        return bool(self.openai_api_key)


def build_config(dotenv_dir: Optional[str] = None) -> ExtractionConfig:
    """Create an ExtractionConfig from the environment and the nearest .env."""
    env = _read_dotenv(dotenv_dir or os.getcwd())

    timeout_raw = _lookup(env, "OPENAI_TIMEOUT")
    timeout = _as_float(timeout_raw, 0.0, key="OPENAI_TIMEOUT") if timeout_raw else 0.0

    config = ExtractionConfig(
        openai_api_key=_lookup(env, "OPENAI_API_KEY"),
        openai_model=_lookup(env, "OPENAI_MODEL") or "gpt-4o-mini",
        openai_base_url=_lookup(env, "OPENAI_BASE_URL"),
        temperature=_as_float(_lookup(env, "OPENAI_TEMPERATURE"), 0.1, key="OPENAI_TEMPERATURE"),
        max_tokens=_as_int(_lookup(env, "OPENAI_MAX_TOKENS"), 4000, key="OPENAI_MAX_TOKENS", minimum=1),
        request_timeout=timeout if timeout > 0 else None,
        ocr_languages=_lookup(env, "OCR_LANGUAGES") or "jpn+eng",
        tesseract_config=_lookup(env, "TESSERACT_CONFIG") or "",
        min_pdf_chars=_as_int(_lookup(env, "MIN_PDF_CHARS"), 10, key="MIN_PDF_CHARS"),
        min_ocr_chars=_as_int(_lookup(env, "MIN_OCR_CHARS"), 3, key="MIN_OCR_CHARS"),
        max_pdf_bytes=_as_int(_lookup(env, "MAX_PDF_MB"), 10, key="MAX_PDF_MB", minimum=1) * 1024 * 1024,
        max_image_bytes=_as_int(_lookup(env, "MAX_IMAGE_MB"), 5, key="MAX_IMAGE_MB", minimum=1) * 1024 * 1024,
        batch_workers=_as_int(_lookup(env, "BATCH_WORKERS"), 1, key="BATCH_WORKERS", minimum=1),
        dictionaries_path=_lookup(env, "PRODUCT_DICTIONARIES"),
        usage_db=_lookup(env, "USAGE_DB"),
        usage_capacity=_as_int(_lookup(env, "USAGE_CAPACITY"), 100, key="USAGE_CAPACITY", minimum=1),
        usd_jpy_rate=_as_float(_lookup(env, "USD_JPY_RATE"), 150.0, key="USD_JPY_RATE"),
    )
    if config.ai_available:
        log.info(f"AI strategy available (model={config.openai_model})")
    else:
        log.info("OPENAI_API_KEY not set; only the pattern strategy will succeed")
    return config
