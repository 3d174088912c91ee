from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import requests

from mobility import config
from mobility.filters import ALL


logger = logging.getLogger(__name__)

LOCAL_PREFIX = "data"

STOPS_DIR = "matsim/transit/stops_by_canton"
COUNTS_DIR = "matsim/transit/per_canton_counts"

# Per-canton files live in subfolders; a bare uploaded name is placed there by suffix.
NESTED_UPLOAD_DIRS = [("_stops.geojson", STOPS_DIR), ("_counts.json", COUNTS_DIR)]

CANTON_ALIAS = {
    "All": "Switzerland",
    "AppenzellAusserrhoden": "Appenzell Ausserrhoden",
    "AppenzellInnerrhoden": "Appenzell Innerrhoden",
    "Geneve": "Genève",
    "Graubunden": "Graubünden",
    "Neuchatel": "Neuchâtel",
    "StGallen": "St. Gallen",
    "Zurich": "Zürich",
}

# (min lon, min lat), (max lon, max lat)
CANTON_BOUNDS: Dict[str, Tuple[Tuple[float, float], Tuple[float, float]]] = {
    "All": ((5.9, 45.8), (10.5, 47.8)),
    "Zurich": ((8.35, 47.15), (8.99, 47.7)),
    "Bern": ((6.85, 46.32), (8.46, 47.35)),
    "Geneve": ((5.95, 46.12), (6.32, 46.37)),
    "Vaud": ((6.07, 46.2), (7.24, 46.98)),
    "Aargau": ((7.71, 47.13), (8.46, 47.62)),
    "StGallen": ((8.79, 46.87), (9.68, 47.53)),
    "Luzern": ((7.83, 46.76), (8.52, 47.27)),
    "Ticino": ((8.38, 45.82), (9.17, 46.64)),
    "Valais": ((6.77, 45.85), (8.48, 46.66)),
    "Basel-Stadt": ((7.55, 47.51), (7.68, 47.6)),
    "Basel-Landschaft": ((7.32, 47.33), (7.97, 47.57)),
    "Fribourg": ((6.74, 46.44), (7.39, 47.01)),
    "Solothurn": ((7.34, 47.07), (7.95, 47.5)),
    "Graubunden": ((8.65, 46.17), (10.49, 47.07)),
    "Thurgau": ((8.63, 47.37), (9.4, 47.7)),
    "Schaffhausen": ((8.4, 47.65), (8.87, 47.82)),
    "Neuchatel": ((6.44, 46.82), (7.07, 47.14)),
    "Schwyz": ((8.42, 46.88), (9.0, 47.23)),
    "Zug": ((8.36, 47.05), (8.62, 47.27)),
    "Glarus": ((8.76, 46.79), (9.23, 47.17)),
    "Jura": ((6.84, 47.14), (7.56, 47.51)),
    "Nidwalden": ((8.2, 46.77), (8.57, 47.0)),
    "Obwalden": ((8.02, 46.72), (8.42, 47.0)),
    "Uri": ((8.38, 46.41), (8.93, 46.99)),
    "AppenzellAusserrhoden": ((9.19, 47.3), (9.61, 47.48)),
    "AppenzellInnerrhoden": ((9.35, 47.24), (9.51, 47.37)),
}

DATASETS = ["Microcensus", "Synthetic"]


class DataUnavailableError(RuntimeError):
    """Raised when no source (upload, explicit, context or default URL) yields the file."""


def canton_label(canton: Optional[str]) -> str:
    canton = canton or ALL
    return CANTON_ALIAS.get(canton, canton)


def canton_bounds(canton: Optional[str]) -> Tuple[Tuple[float, float], Tuple[float, float]]:
    return CANTON_BOUNDS.get(canton or ALL, CANTON_BOUNDS[ALL])


def canton_slice(payload: Any, canton: Optional[str]) -> Any:
    """Return the fragment of a canton-keyed payload, or None when the canton is absent."""
    if not isinstance(payload, dict):
        return None
    return payload.get(canton or ALL)


# ---------------- File map (uploaded data override) ----------------
def upload_key(name: str) -> str:
    """File map key for an uploaded file name; bare per-canton names go to their subfolder."""
    if name.startswith(f"{LOCAL_PREFIX}/"):
        return name
    if "/" not in name:
        for suffix, folder in NESTED_UPLOAD_DIRS:
            if name.endswith(suffix):
                return f"{LOCAL_PREFIX}/{folder}/{name}"
    return f"{LOCAL_PREFIX}/{name}"


def _read_handle(handle: Any) -> bytes:
    if isinstance(handle, (str, Path)):
        return Path(handle).read_bytes()
    if hasattr(handle, "getvalue"):
        return handle.getvalue()
    if hasattr(handle, "seek"):
        handle.seek(0)
    return handle.read()


class FileMap:
    """Relative path (``data/<relative>``) -> file handle.

    Handles are filesystem paths or in-memory uploads (anything exposing
    ``getvalue()`` or ``read()``).
    """

    def __init__(self, files: Optional[Dict[str, Any]] = None) -> None:
        self._files: Dict[str, Any] = dict(files or {})

    @classmethod
    def from_directory(cls, root: str | Path) -> "FileMap":
        root = Path(root)
        files: Dict[str, Any] = {}
        if root.is_dir():
            for path in sorted(root.rglob("*")):
                if path.is_file():
                    files[f"{LOCAL_PREFIX}/{path.relative_to(root).as_posix()}"] = path
        return cls(files)

    @classmethod
    def from_uploads(cls, uploads: Iterable[Any]) -> "FileMap":
        files: Dict[str, Any] = {}
        for up in uploads or []:
            name = str(getattr(up, "name", "") or "").replace("\\", "/").lstrip("/")
            if not name:
                continue
            files[upload_key(name)] = up
        return cls(files)

    def __contains__(self, key: object) -> bool:
        return key in self._files

    def __len__(self) -> int:
        return len(self._files)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._files))

    def read_json(self, key: str) -> Any:
        return json.loads(_read_handle(self._files[key]))

    def clear(self) -> None:
        self._files.clear()


# ---------------- Remote / directory candidates ----------------
def _join(base: str, relative_path: str) -> str:
    return base.rstrip("/") + "/" + relative_path.lstrip("/")


def _is_remote(base: str) -> bool:
    return base.startswith("http://") or base.startswith("https://")


@lru_cache(maxsize=128)
def _fetch_remote_json(url: str, timeout: float) -> Any:
    resp = requests.get(url, timeout=timeout)
    resp.raise_for_status()
    return resp.json()


def clear_remote_cache() -> None:
    _fetch_remote_json.cache_clear()


def _load_candidate(base: str, relative_path: str, timeout: float) -> Tuple[Any, str]:
    if _is_remote(base):
        url = _join(base, relative_path)
        return _fetch_remote_json(url, timeout), url
    path = Path(base) / relative_path
    return json.loads(path.read_bytes()), str(path)


def load_with_fallback(
    relative_path: str,
    *,
    file_map: Optional[FileMap] = None,
    explicit_url: Optional[str] = None,
    context_url: Optional[str] = None,
    default_url: Optional[str] = config.DEFAULT_DATA_URL,
    timeout: float = config.REQUEST_TIMEOUT,
) -> Any:
    """Resolve a data file: uploaded file, then explicit, context and default base URLs.

    The first source that yields valid JSON wins. Raises DataUnavailableError when all fail.
    """
    local_key = f"{LOCAL_PREFIX}/{relative_path}"
    if file_map is not None and local_key in file_map:
        try:
            payload = file_map.read_json(local_key)
            logger.info("Loaded from uploaded files: %s", local_key)
            return payload
        except (OSError, ValueError) as exc:
            logger.warning("Failed parsing uploaded file %s: %s", local_key, exc)

    candidates = [c for c in (explicit_url, context_url, default_url) if c]
    for base in candidates:
        try:
            payload, where = _load_candidate(base, relative_path, timeout)
        except (requests.RequestException, OSError, ValueError) as exc:
            logger.debug("Fallback candidate failed for %s at %s: %s", relative_path, base, exc)
            continue
        logger.info("Loaded %s from %s", relative_path, where)
        return payload

    raise DataUnavailableError(f"All fallback attempts failed for {relative_path}")


@dataclass(frozen=True)
class DataSource:
    """Where charts read their data from: uploads first, then the base URLs."""

    file_map: FileMap = field(default_factory=FileMap)
    context_url: Optional[str] = config.DATA_URL
    default_url: Optional[str] = config.DEFAULT_DATA_URL
    timeout: float = config.REQUEST_TIMEOUT

    def load(self, relative_path: str, explicit_url: Optional[str] = None) -> Any:
        return load_with_fallback(
            relative_path,
            file_map=self.file_map,
            explicit_url=explicit_url,
            context_url=self.context_url,
            default_url=self.default_url,
            timeout=self.timeout,
        )

    def with_file_map(self, file_map: FileMap) -> "DataSource":
        return replace(self, file_map=file_map)

    def describe(self) -> Dict[str, Any]:
        return {
            "uploaded_files": len(self.file_map),
            "context_url": self.context_url,
            "default_url": self.default_url,
        }


def default_data_source() -> DataSource:
    file_map = FileMap.from_directory(config.LOCAL_DIR) if config.LOCAL_DIR else FileMap()
    return DataSource(file_map=file_map)


def load_canton_fragment(source: DataSource, relative_path: str, canton: Optional[str]) -> Any:
    """Load a canton-keyed file and return the canton's fragment (None if absent)."""
    return canton_slice(source.load(relative_path), canton)


def ordered_unique(values: Iterable[Any]) -> List[Any]:
    seen = set()
    out: List[Any] = []
    for v in values:
        if v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out
