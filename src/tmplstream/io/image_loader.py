from __future__ import annotations

import base64
import binascii
from pathlib import Path
from typing import Union

import cv2
import numpy as np

PathLike = Union[str, Path]


def load_grayscale(path: PathLike) -> np.ndarray:
    """
    Load an image as a single-channel array suitable for template matching.
    """
    return load_image(path, grayscale=True)


def load_image(path: PathLike, grayscale: bool = False) -> np.ndarray:
    """
    Load an image from disk as BGR (or single-channel when ``grayscale``).
    """
    flags = cv2.IMREAD_GRAYSCALE if grayscale else cv2.IMREAD_COLOR
    image = cv2.imread(str(path), flags)
    if image is None:
        raise FileNotFoundError(f"Unable to load image at {path}")
    return image


def decode_image(data: Union[bytes, str], grayscale: bool = False) -> np.ndarray:
    """
    Decode PNG/JPEG bytes, a base64 string or a ``data:image/...;base64,`` URL.
    """
    if isinstance(data, str):
        encoded = data.split(",", 1)[1] if data.startswith("data:") else data
        try:
            raw = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"Invalid base64 image data: {exc}") from exc
    else:
        raw = data

    buffer = np.frombuffer(raw, dtype=np.uint8)
    flags = cv2.IMREAD_GRAYSCALE if grayscale else cv2.IMREAD_UNCHANGED
    image = cv2.imdecode(buffer, flags) if buffer.size else None
    if image is None:
        raise ValueError("Unable to decode image data")
    return image


def encode_png_base64(image: np.ndarray) -> str:
    """
    Encode an image as a ``data:image/png;base64,`` URL.
    """
    ok, encoded = cv2.imencode(".png", image)
    if not ok:
        raise ValueError("Unable to encode image as PNG")
    return "data:image/png;base64," + base64.b64encode(encoded.tobytes()).decode("ascii")


__all__ = ["decode_image", "encode_png_base64", "load_grayscale", "load_image"]
