"""Barcode decoding as an ordered list of strategies.

Order: zxingcpp on the raw frame → zxingcpp after black/white contrast →
zxingcpp on inverted colors → pyzbar on the raw frame (last resort).
The first strategy that reads a value wins; "no barcode" just falls
through to the next one.
"""

import functools
import logging
import operator
from collections import Counter
from dataclasses import dataclass
from typing import Callable

import cv2
import numpy as np
import zxingcpp

logger = logging.getLogger("scanner")

# 1D symbologies a stock room actually prints
ZXING_FORMATS = (
    "Code128",
    "Code39",
    "Code93",
    "EAN13",
    "EAN8",
    "UPCA",
    "UPCE",
    "ITF",
    "Codabar",
    "DataBar",
    "DataBarExpanded",
)

ZBAR_SYMBOLS = ("CODE128", "CODE39", "EAN13", "EAN8", "CODE93", "CODABAR", "I25")


@dataclass
class DecodedResult:
    found: bool
    text: str | None = None
    strategy: str | None = None
    error: Exception | None = None
    skipped: bool = False

    @classmethod
    def not_ready(cls) -> "DecodedResult":
        return cls(found=False, skipped=True)


def _to_gray(frame: np.ndarray) -> np.ndarray:
    if len(frame.shape) == 3:
        return cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
    return frame


def enhance_contrast(frame: np.ndarray) -> np.ndarray:
    """Push every pixel to pure black or white around mid-gray."""
    # Float luma so values just above 128 are not rounded down to black
    if len(frame.shape) == 3:
        b, g, r = (frame[..., i].astype(np.float64) for i in range(3))
        luma = 0.299 * r + 0.587 * g + 0.114 * b
    else:
        luma = frame.astype(np.float64)
    return np.where(luma > 128, 255, 0).astype(np.uint8)


def invert_colors(frame: np.ndarray) -> np.ndarray:
    return cv2.bitwise_not(frame)


@functools.lru_cache(maxsize=1)
def _zxing_formats():
    return functools.reduce(
        operator.or_, (getattr(zxingcpp.BarcodeFormat, name) for name in ZXING_FORMATS)
    )


def zxing_backend(image: np.ndarray) -> str | None:
    """zxing-cpp multi-format reader. None when no barcode is present."""
    results = zxingcpp.read_barcodes(
        _to_gray(image),
        formats=_zxing_formats(),
        try_rotate=True,
        is_pure=False,
    )
    for r in results:
        if r.text:
            return r.text
    return None


def zbar_backend(image: np.ndarray) -> str | None:
    """pyzbar with its own reader set. None when no barcode is present."""
    # Loaded on first use: pyzbar needs the system zbar library
    from pyzbar.pyzbar import ZBarSymbol, decode as pyzbar_decode

    symbols = [getattr(ZBarSymbol, name) for name in ZBAR_SYMBOLS]
    for r in pyzbar_decode(_to_gray(image), symbols=symbols):
        text = r.data.decode("utf-8", errors="replace")
        if text:
            return text
    return None


@dataclass(frozen=True)
class Strategy:
    name: str
    backend: Callable[[np.ndarray], str | None]
    transform: Callable[[np.ndarray], np.ndarray] | None = None

    def __call__(self, frame: np.ndarray) -> DecodedResult:
        image = self.transform(frame) if self.transform else frame
        text = self.backend(image)
        if text:
            return DecodedResult(found=True, text=text, strategy=self.name)
        return DecodedResult(found=False, strategy=self.name)


DEFAULT_STRATEGIES = (
    Strategy("raw", zxing_backend),
    Strategy("contrast", zxing_backend, enhance_contrast),
    Strategy("inverted", zxing_backend, invert_colors),
    Strategy("secondary", zbar_backend),
)


class FramePipeline:
    """Runs strategies left to right against one still frame."""

    def __init__(self, strategies=DEFAULT_STRATEGIES):
        self.strategies = tuple(strategies)
        self.hits: Counter = Counter()

    def attempt(self, frame: np.ndarray | None) -> DecodedResult:
        if frame is None or frame.size == 0 or 0 in frame.shape[:2]:
            return DecodedResult.not_ready()

        still = frame.copy()
        error = None
        for strategy in self.strategies:
            try:
                result = strategy(still)
            except Exception as e:
                logger.warning("Strategy %s raised: %s", strategy.name, e)
                error = e
                continue
            if result.found:
                self.hits[strategy.name] += 1
                logger.info("Barcode detected via %s: %s", strategy.name, result.text)
                return result
            logger.debug("Strategy %s found nothing", strategy.name)

        return DecodedResult(found=False, error=error)

    def reset(self):
        if self.hits:
            logger.debug("Strategy hits this session: %s", dict(self.hits))
        self.hits.clear()
