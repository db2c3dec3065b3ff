from __future__ import annotations

import zlib
from typing import NamedTuple

import numpy as np

HASH_SAMPLES = 1000


def frame_hash(data: np.ndarray, samples: int = HASH_SAMPLES) -> str:
    """
    Cheap perceptual hash: CRC32 over a fixed-stride sample of the pixel bytes.

    The sample takes the first channel byte of roughly ``samples`` evenly
    spaced pixels, so two frames differing only between sampled pixels hash
    the same. Not suitable for anything security related.
    """
    flat = np.ascontiguousarray(data).reshape(-1)
    if flat.size == 0:
        return f"{'x'.join(str(dim) for dim in data.shape)}:empty"
    channels = data.shape[2] if data.ndim == 3 else 1
    step = max(1, flat.size // (samples * channels)) * channels
    sample = flat[::step]
    digest = zlib.crc32(sample.tobytes())
    shape = "x".join(str(dim) for dim in data.shape)
    return f"{shape}:{digest:08x}"


class TemplateKey(NamedTuple):
    width: int
    height: int
    downsample: float
    grayscale: bool
    identity: str


def template_key(
    template: np.ndarray,
    downsample: float,
    grayscale: bool,
    name: str | None = None,
) -> TemplateKey:
    """
    Cache key for a preprocessed template.

    Every key carries a content fingerprint, so two different templates of
    equal size never share an entry. Named templates (batch requests) also
    carry their name, and an asset re-registered under the same name with new
    pixels gets a fresh entry.
    """
    digest = frame_hash(template)
    identity = f"name:{name}:{digest}" if name is not None else f"hash:{digest}"
    return TemplateKey(
        width=int(template.shape[1]),
        height=int(template.shape[0]),
        downsample=round(float(downsample), 6),
        grayscale=bool(grayscale),
        identity=identity,
    )


__all__ = ["HASH_SAMPLES", "TemplateKey", "frame_hash", "template_key"]
