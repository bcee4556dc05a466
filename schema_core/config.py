from __future__ import annotations
import os, json, pathlib


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


MAPPING_VERSION: str = "lasbi-v1.3.0"
MAPPING_VERSION_PATTERN: str = r"^lasbi-v\d+\.\d+\.\d+$"

SCHEMA_VERSION: str = "1.0.0"
SCHEMA_VERSION_PATTERN: str = r"^\d+\.\d+\.\d+$"
ACCEPTED_SCHEMA_VERSIONS: tuple[str, ...] = ("1.0.0",)

INSTRUMENT_NAME: str = "LASBI"
INSTRUMENT_FORM: str = "short"
SCALE_MIN: int = 1
SCALE_MAX: int = 6

ITEMS_PER_SCHEMA: int = 6
SCHEMA_COUNT: int = 18
ITEM_COUNT: int = 108
DOMAIN_SCHEMA_COUNTS: dict[int, int] = {1: 5, 2: 4, 3: 2, 4: 3, 5: 4}

ACTIVATION_THRESHOLD: float = 60.0

EXPORT_MAX_ERRORS: int = 10
EXPORT_ENABLED: bool = True
ALLOW_VERSION_BYPASS: bool = False

SOURCE_APP: str = "Inner Persona Assessment Portal"
SOURCE_APP_VERSION: str = "3.2.1"

# env overrides for staging/ops; defaults match the Studio contract.
MAPPING_VERSION = _env_str("LASBI_MAPPING_VERSION", MAPPING_VERSION)
ACTIVATION_THRESHOLD = _env_float("ACTIVATION_THRESHOLD", ACTIVATION_THRESHOLD)
EXPORT_MAX_ERRORS = _env_int("EXPORT_MAX_ERRORS", EXPORT_MAX_ERRORS)
EXPORT_ENABLED = _env_bool("EXPORT_ENABLED", EXPORT_ENABLED)
ALLOW_VERSION_BYPASS = _env_bool("ALLOW_VERSION_BYPASS", ALLOW_VERSION_BYPASS)
SOURCE_APP_VERSION = _env_str("SOURCE_APP_VERSION", SOURCE_APP_VERSION)


def load_config() -> dict:
    cfg: dict = {}
    p = pathlib.Path("config.json")
    if p.exists():
        try: cfg = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError): cfg = {}
    e = os.environ
    if e.get("ACTIVATION_THRESHOLD"): cfg["ACTIVATION_THRESHOLD"] = _env_float("ACTIVATION_THRESHOLD", ACTIVATION_THRESHOLD)
    if e.get("ALLOW_VERSION_BYPASS"): cfg["ALLOW_VERSION_BYPASS"] = _env_bool("ALLOW_VERSION_BYPASS", False)
    if e.get("EXPORT_MAX_ERRORS"): cfg["EXPORT_MAX_ERRORS"] = _env_int("EXPORT_MAX_ERRORS", EXPORT_MAX_ERRORS)
    cfg.setdefault("ACTIVATION_THRESHOLD", ACTIVATION_THRESHOLD)
    cfg.setdefault("ALLOW_VERSION_BYPASS", ALLOW_VERSION_BYPASS)
    cfg.setdefault("EXPORT_MAX_ERRORS", EXPORT_MAX_ERRORS)
    return cfg
