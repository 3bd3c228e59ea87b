"""Shared helpers: config, client-local state stores, snapshots, logging."""

import json
import time
import logging
from pathlib import Path

import numpy as np
from PIL import Image

logger = logging.getLogger("scanner")

CONFIG_PATH = Path(__file__).parent / "config.json"

DEFAULT_CONFIG = {
    "api_url": "http://localhost:8080/api",
    "request_timeout": 10,
    "sample_interval_s": 0.8,
    "max_consecutive_failures": 10,
    "default_camera_index": 0,
    "environment_camera_index": 0,
    "user_camera_index": 1,
    "camera_width": {"ideal": 1280, "min": 640, "max": 1920},
    "camera_height": {"ideal": 720, "min": 480, "max": 1080},
    "state_file": "scanner_state.json",
    "log_file": "scanner.log.jsonl",
    "snapshot_dir": "",
}


def load_config(path: Path | None = None) -> dict:
    path = Path(path) if path else CONFIG_PATH
    cfg = dict(DEFAULT_CONFIG)
    if path.exists():
        with open(path) as f:
            cfg.update(json.load(f))
    return cfg


class MemoryStore:
    """Key/value store kept in memory; same interface as JsonFileStore."""

    def __init__(self, initial: dict | None = None):
        self._data = dict(initial or {})

    def get(self, key: str, default=None):
        return self._data.get(key, default)

    def set(self, key: str, value):
        self._data[key] = value

    def remove(self, key: str):
        self._data.pop(key, None)


class JsonFileStore:
    """Client-local state persisted as a single JSON object on disk.

    Stands in for browser localStorage: the camera permission flag and the
    barcode search history live here between runs.
    """

    def __init__(self, path: str):
        self._path = Path(path)

    def _read(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            with open(self._path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("State file %s unreadable, starting fresh: %s", self._path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict):
        with open(self._path, "w") as f:
            json.dump(data, f, indent=2)

    def get(self, key: str, default=None):
        return self._read().get(key, default)

    def set(self, key: str, value):
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, key: str):
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


def save_snapshot(frame: np.ndarray, directory: str, tag: str = "miss") -> Path:
    """Write a BGR frame as PNG into directory, return the file path."""
    out_dir = Path(directory)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / f"{tag}_{int(time.time() * 1000)}.png"
    if frame.ndim == 3:
        frame = np.ascontiguousarray(frame[..., ::-1])  # BGR → RGB
    Image.fromarray(frame).save(path)
    return path


class JsonLinesLogger:
    """Append structured JSON lines to a log file."""

    def __init__(self, path: str):
        self._path = Path(path)

    def log(self, event: str, **data):
        entry = {"ts": time.time(), "event": event, **data}
        with open(self._path, "a") as f:
            f.write(json.dumps(entry) + "\n")


def setup_logging(level=logging.INFO):
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )
