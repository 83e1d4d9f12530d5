import time
from typing import Tuple

import cv2
import numpy as np


def now_ts() -> float:
    return time.time()


def polygon_area(pts: np.ndarray) -> float:
    # Shoelace formula over a closed polygon
    x = pts[:, 0]
    y = pts[:, 1]
    return float(abs(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))) / 2.0)


def polygon_perimeter(pts: np.ndarray) -> float:
    d = np.roll(pts, -1, axis=0) - pts
    return float(np.sqrt((d ** 2).sum(axis=1)).sum())


def corner_angles(pts: np.ndarray) -> np.ndarray:
    """Interior angle in degrees at each vertex of a closed polygon."""
    prev = np.roll(pts, 1, axis=0) - pts
    nxt = np.roll(pts, -1, axis=0) - pts
    denom = np.linalg.norm(prev, axis=1) * np.linalg.norm(nxt, axis=1) + 1e-8
    cos = np.clip((prev * nxt).sum(axis=1) / denom, -1.0, 1.0)
    return np.degrees(np.arccos(cos))


def to_gray(pixels: np.ndarray, channel_order: str = "BGR") -> np.ndarray:
    # Luminance: 0.299R + 0.587G + 0.114B
    if pixels.ndim == 2:
        return pixels.astype(np.float32)
    if channel_order.upper() == "RGB":
        r, g, b = pixels[..., 0], pixels[..., 1], pixels[..., 2]
    else:
        b, g, r = pixels[..., 0], pixels[..., 1], pixels[..., 2]
    return (0.299 * r + 0.587 * g + 0.114 * b).astype(np.float32)


def resize_nn(img: np.ndarray, size: Tuple[int, int]) -> np.ndarray:
    # Very simple nearest-neighbor resize without cv2
    h, w = img.shape[:2]
    new_w, new_h = size
    y_idx = (np.linspace(0, h - 1, new_h)).astype(int)
    x_idx = (np.linspace(0, w - 1, new_w)).astype(int)
    if img.ndim == 2:
        return img[y_idx][:, x_idx]
    return img[y_idx][:, x_idx, :]


def encode_jpeg(img: np.ndarray, quality: int = 92) -> bytes:
    ok, buf = cv2.imencode(".jpg", img, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise ValueError("JPEG encoding failed")
    return buf.tobytes()


def decode_image(raw: bytes) -> np.ndarray:
    if not raw:
        raise ValueError("Empty image data")
    arr = np.frombuffer(raw, np.uint8)
    img = cv2.imdecode(arr, cv2.IMREAD_COLOR)
    if img is None:
        raise ValueError("Could not decode image")
    return img
