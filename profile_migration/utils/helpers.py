"""
Small helpers shared by the CLI, the orchestrator and the notifier.
"""

import json
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union

import yaml

MASK = "***MASKED***"

SENSITIVE_KEYS = ('password', 'passwd', 'pwd', 'secret', 'token', 'api_key', 'credential')

_UNSAFE_FILENAME_CHARS = '<>:"/\\|?* '


def generate_session_id() -> str:
    """Session IDs sort by creation time: ``YYYYmmdd_HHMMSS_<8 hex>``."""
    return f"{datetime.now():%Y%m%d_%H%M%S}_{uuid.uuid4().hex[:8]}"


def normalize_host_name(name: str) -> str:
    """Normalize a free-text host name to the NetBIOS form used in the inventory."""
    name = (name or "").strip()
    # Inventory records store the short name only
    return name.split(".", 1)[0].upper()


def format_duration(seconds: float) -> str:
    """Render seconds as ``42.0s``, ``1.5m`` or ``1.5h``."""
    for unit, size in (("h", 3600), ("m", 60)):
        if seconds >= size:
            return f"{seconds / size:.1f}{unit}"
    return f"{seconds:.1f}s"


def safe_filename(filename: str) -> str:
    """Replace characters that are not allowed (or awkward) in file names."""
    cleaned = "".join('_' if char in _UNSAFE_FILENAME_CHARS else char for char in filename)
    return cleaned.strip(' .')[:255]


def load_config_file(file_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Read a YAML or JSON configuration file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the suffix is neither YAML nor JSON
    """
    path = Path(file_path)
    if not path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    suffix = path.suffix.lower()
    if suffix not in ('.yaml', '.yml', '.json'):
        raise ValueError(f"Unsupported configuration file format: {path.suffix}")

    text = path.read_text(encoding='utf-8')
    if suffix == '.json':
        return json.loads(text)
    return yaml.safe_load(text) or {}


def sanitize_dict(data: Dict[str, Any], sensitive_keys: Optional[Iterable[str]] = None) -> Dict[str, Any]:
    """Copy of ``data`` with the values of secret-looking keys masked, recursively."""
    keys = tuple(sensitive_keys or SENSITIVE_KEYS)

    def _mask(key: str, value: Any) -> Any:
        if isinstance(value, dict):
            return sanitize_dict(value, keys)
        if isinstance(value, list):
            return [_mask(key, item) for item in value]
        if value and any(k in key.lower() for k in keys):
            return MASK
        return value

    return {key: _mask(key, value) for key, value in data.items()}
