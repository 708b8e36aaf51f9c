import json
from pathlib import Path
from threading import Lock

from insurance_claims.config import is_dev_mode
from insurance_claims.model import CodeSystemLabels, CodeType

# Path to JSON files
DATA_PATH = Path(__file__).resolve().parent / "data"

GENERIC_LABELS = {
    "procedure": CodeType.procedure.value,
    "diagnosis": CodeType.diagnosis.value,
    "pharmaceutical": CodeType.pharmaceutical.value,
}

# Module-level cache
_cached_code_systems = None

# Lock to make cache thread-safe
_cache_lock = Lock()


def load_json(file_name: str):
    """Load a JSON file from the data folder."""
    file_path = DATA_PATH / file_name
    with open(file_path, "r", encoding="utf-8") as f:
        return json.load(f)


def reset_cache():
    """Manually reset the catalog cache."""
    global _cached_code_systems
    with _cache_lock:
        _cached_code_systems = None


def _load_code_systems():
    global _cached_code_systems
    raw = load_json("code_systems.json")
    _cached_code_systems = {str(country).upper(): labels for country, labels in raw.items()}


def get_all_code_systems():
    with _cache_lock:
        if is_dev_mode() or _cached_code_systems is None:
            _load_code_systems()
        return dict(_cached_code_systems)


def get_code_system_labels(country_id: str) -> CodeSystemLabels:
    """Labels are display metadata only; codes are stored as opaque strings."""
    labels = get_all_code_systems().get(str(country_id).upper(), {})
    merged = {**GENERIC_LABELS, **labels}
    return CodeSystemLabels(country_id=country_id, **merged)


def label_for(country_id: str, code_type: CodeType) -> str:
    return getattr(get_code_system_labels(country_id), code_type.name)
