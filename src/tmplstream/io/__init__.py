"""
IO helpers for loading and exchanging template images.
"""

from .image_loader import decode_image, encode_png_base64, load_grayscale, load_image

__all__ = ["decode_image", "encode_png_base64", "load_grayscale", "load_image"]
