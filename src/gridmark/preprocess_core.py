# src/gridmark/preprocess_core.py
from __future__ import annotations

import base64
import binascii
import re
from typing import Union

import cv2
import numpy as np

from .errors import DecodeError

ImageData = Union[bytes, bytearray, memoryview, str, np.ndarray]

_DATA_URI = re.compile(r"^data:image/[\w.+-]+;base64,")


def strip_data_uri(text: str) -> str:
    """Drop a leading `data:image/<type>;base64,` prefix if present."""
    return _DATA_URI.sub("", text.strip(), count=1)


def load_image_bytes(image_data: ImageData) -> bytes:
    """Normalize raw bytes or a base64 string (optionally a data URI) to bytes."""
    if isinstance(image_data, str):
        # MIME base64 wraps lines; the alphabet check applies to what remains
        payload = "".join(strip_data_uri(image_data).split())
        try:
            return base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecodeError(f"Image string is not valid base64: {e}") from e
    if isinstance(image_data, (bytes, bytearray, memoryview)):
        return bytes(image_data)
    raise DecodeError(f"Unsupported image input type: {type(image_data).__name__}")


def to_grayscale(image_data: ImageData) -> np.ndarray:
    """Decode to a single-channel uint8 array (H x W)."""
    if isinstance(image_data, np.ndarray):
        img = image_data
        if img.ndim == 3 and img.shape[2] == 4:
            img = cv2.cvtColor(img, cv2.COLOR_BGRA2GRAY)
        elif img.ndim == 3 and img.shape[2] == 3:
            img = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
        elif img.ndim == 3 and img.shape[2] == 1:
            img = img[:, :, 0]
        if img.ndim != 2 or img.size == 0:
            raise DecodeError(f"Unsupported image array shape: {image_data.shape}")
        if img.dtype != np.uint8:
            img = np.clip(img, 0, 255).astype(np.uint8)
        return np.ascontiguousarray(img)

    raw = load_image_bytes(image_data)
    if not raw:
        raise DecodeError("Image data is empty")
    buf = np.frombuffer(raw, dtype=np.uint8)
    try:
        gray = cv2.imdecode(buf, cv2.IMREAD_GRAYSCALE)
    except cv2.error as e:
        raise DecodeError(f"Could not decode image: {e}") from e
    if gray is None or gray.size == 0:
        raise DecodeError("Could not decode image: unrecognized format or corrupt data")
    return gray


def normalize_contrast(gray: np.ndarray) -> np.ndarray:
    """Stretch intensities to the full 0..255 range. Flat images are returned as-is."""
    lo, hi = int(gray.min()), int(gray.max())
    if hi <= lo:
        return gray.copy()
    return cv2.normalize(gray, None, 0, 255, cv2.NORM_MINMAX, dtype=cv2.CV_8U)


def preprocess(image_data: ImageData) -> np.ndarray:
    return normalize_contrast(to_grayscale(image_data))
