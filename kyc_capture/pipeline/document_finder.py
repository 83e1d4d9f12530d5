"""
Document quadrilateral finder.

Edge map -> connected edge components -> convex boundary -> Douglas-Peucker
simplification to four corners. numpy throughout, OpenCV only for the hull.
No state is kept between calls, so identical pixels and configuration always
give the same quad.
"""
import logging
from collections import deque
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from kyc_capture.app.config import DocumentConfig
from kyc_capture.app.utils import corner_angles, polygon_area, polygon_perimeter, resize_nn, to_gray
from kyc_capture.models.base import DocumentCorners, Frame

logger = logging.getLogger(__name__)


@dataclass
class QuadCandidate:
    corners: DocumentCorners
    score: float
    area_ratio: float
    rectangularity: float


class DocumentQuadFinder:
    def __init__(self, cfg: Optional[DocumentConfig] = None):
        self.cfg = cfg or DocumentConfig()

    def find(self, frame: Frame, scale: Optional[float] = None) -> Optional[QuadCandidate]:
        s = self.cfg.downscale if scale is None else scale
        if not 0.0 < s <= 1.0:
            raise ValueError(f"downscale must be in (0, 1], got {s}")

        gray = to_gray(frame.pixels, frame.channel_order)
        if s < 1.0:
            new_w = max(8, int(round(frame.width * s)))
            new_h = max(8, int(round(frame.height * s)))
            gray = resize_nn(gray, (new_w, new_h))
        h, w = gray.shape[:2]
        # Maps analysis coordinates back to the full frame
        fx = frame.width / float(w)
        fy = frame.height / float(h)

        edges = edge_map(box_blur(gray), self.cfg.edge_threshold)
        best: Optional[QuadCandidate] = None
        for comp in extract_contours(
            edges,
            self.cfg.sample_stride,
            self.cfg.min_contour_pixels,
            self.cfg.max_contour_pixels,
            self.cfg.max_total_pixels,
        ):
            cand = self._evaluate(comp, w, h)
            if cand is not None and (best is None or cand.score > best.score):
                best = cand
        if best is None:
            return None
        c = best.corners.as_array().astype(np.float64)
        c[:, 0] *= fx
        c[:, 1] *= fy
        best.corners = DocumentCorners.from_points(c.tolist())
        logger.debug(f"Quad found score={best.score:.3f} area={best.area_ratio:.3f} rect={best.rectangularity:.3f}")
        return best

    def _evaluate(self, component: np.ndarray, w: int, h: int) -> Optional[QuadCandidate]:
        hull = convex_hull(component)
        if len(hull) < 4:
            return None
        area_ratio = polygon_area(hull) / float(w * h)
        if not (self.cfg.min_area_ratio <= area_ratio <= self.cfg.max_area_ratio):
            return None
        quad = simplify_to_quad(hull, self.cfg.epsilon_fractions)
        if quad is None:
            return None
        corners = DocumentCorners.from_points(quad.tolist())
        quad_area = polygon_area(corners.as_array().astype(np.float64))
        if quad_area < 1.0:
            # Collinear or collapsed corners
            return None
        rect = rectangularity(corners)
        quad_ratio = min(1.0, quad_area / float(w * h))
        score = quad_ratio * self.cfg.area_weight + rect * self.cfg.rect_weight
        return QuadCandidate(corners, float(score), float(quad_ratio), float(rect))


def box_blur(gray: np.ndarray) -> np.ndarray:
    pad = np.pad(gray, 1, mode="edge")
    out = np.zeros_like(gray, dtype=np.float32)
    for dy in range(3):
        for dx in range(3):
            out += pad[dy:dy + gray.shape[0], dx:dx + gray.shape[1]]
    return out / 9.0


def edge_map(gray: np.ndarray, threshold: float) -> np.ndarray:
    # Sobel gradient magnitude, binarised
    p = np.pad(gray, 1, mode="edge")
    tl, tc, tr = p[:-2, :-2], p[:-2, 1:-1], p[:-2, 2:]
    ml, mr = p[1:-1, :-2], p[1:-1, 2:]
    bl, bc, br = p[2:, :-2], p[2:, 1:-1], p[2:, 2:]
    gx = (tr + 2 * mr + br) - (tl + 2 * ml + bl)
    gy = (bl + 2 * bc + br) - (tl + 2 * tc + tr)
    return np.hypot(gx, gy) > threshold


def extract_contours(
    edges: np.ndarray,
    stride: int = 1,
    min_pixels: int = 60,
    max_pixels: int = 20000,
    max_total: int = 0,
) -> List[np.ndarray]:
    """Bounded 4-neighbour flood fill over a strided view of the edge map.

    Returns one (N, 2) array of full-resolution (x, y) coordinates per
    component that has at least ``min_pixels`` sampled pixels. At most
    ``max_total`` pixels are visited across all components (0 = unlimited).
    """
    stride = max(1, int(stride))
    grid = edges[::stride, ::stride]
    gh, gw = grid.shape
    todo = grid.copy()
    comps: List[np.ndarray] = []
    visited = 0
    ys, xs = np.nonzero(grid)
    for sy, sx in zip(ys.tolist(), xs.tolist()):
        if max_total > 0 and visited >= max_total:
            logger.debug(f"Edge pixel budget of {max_total} used up; skipping remaining components")
            break
        if not todo[sy, sx]:
            continue
        todo[sy, sx] = False
        queue = deque([(sy, sx)])
        cap = max_pixels if max_total <= 0 else min(max_pixels, max_total - visited)
        pix: List[Tuple[int, int]] = []
        while queue and len(pix) < cap:
            y, x = queue.popleft()
            pix.append((x, y))
            for ny, nx in ((y - 1, x), (y + 1, x), (y, x - 1), (y, x + 1)):
                if 0 <= ny < gh and 0 <= nx < gw and todo[ny, nx]:
                    todo[ny, nx] = False
                    queue.append((ny, nx))
        visited += len(pix)
        if len(pix) >= min_pixels:
            comps.append(np.array(pix, dtype=np.float64) * stride)
    return comps


def convex_hull(points: np.ndarray) -> np.ndarray:
    """Convex hull vertices, starting from the leftmost (then topmost) one."""
    pts = np.unique(points, axis=0)
    if len(pts) < 3:
        return pts
    hull = cv2.convexHull(pts.astype(np.float32)).reshape(-1, 2).astype(np.float64)
    start = int(np.lexsort((hull[:, 1], hull[:, 0]))[0])
    return np.roll(hull, -start, axis=0)


def _point_line_distance(pts: np.ndarray, a: np.ndarray, b: np.ndarray) -> np.ndarray:
    ab = b - a
    len_sq = float(ab @ ab)
    if len_sq == 0.0:
        return np.sqrt(((pts - a) ** 2).sum(axis=1))
    t = np.clip(((pts - a) @ ab) / len_sq, 0.0, 1.0)
    proj = a + t[:, None] * ab
    return np.sqrt(((pts - proj) ** 2).sum(axis=1))


def douglas_peucker(pts: np.ndarray, epsilon: float) -> np.ndarray:
    """Open-polyline Douglas-Peucker; endpoints are always kept."""
    if len(pts) < 3:
        return pts
    keep = np.zeros(len(pts), dtype=bool)
    keep[0] = keep[-1] = True
    stack = [(0, len(pts) - 1)]
    while stack:
        i, j = stack.pop()
        if j - i < 2:
            continue
        d = _point_line_distance(pts[i + 1:j], pts[i], pts[j])
        k = int(np.argmax(d))
        if d[k] > epsilon:
            k += i + 1
            keep[k] = True
            stack.append((i, k))
            stack.append((k, j))
    return pts[keep]


def approx_closed_polygon(poly: np.ndarray, epsilon: float) -> np.ndarray:
    # Split the ring at vertex 0 and the vertex farthest from it
    far = int(np.argmax(((poly - poly[0]) ** 2).sum(axis=1)))
    if far == 0:
        return poly[:1]
    first = douglas_peucker(poly[: far + 1], epsilon)
    second = douglas_peucker(np.vstack([poly[far:], poly[:1]]), epsilon)
    return np.vstack([first[:-1], second[:-1]])


def extreme_points(poly: np.ndarray) -> Optional[np.ndarray]:
    """Four extreme vertices of a polygon, or None if they are not distinct."""
    x, y = poly[:, 0], poly[:, 1]
    axis = [np.argmin(x), np.argmin(y), np.argmax(x), np.argmax(y)]
    diag = [np.argmin(x + y), np.argmin(y - x), np.argmax(x + y), np.argmax(y - x)]
    best = None
    best_area = 0.0
    for idx in (axis, diag):
        if len(set(int(i) for i in idx)) != 4:
            continue
        quad = poly[idx]
        area = polygon_area(quad)
        if area > best_area:
            best, best_area = quad, area
    return best


def simplify_to_quad(poly: np.ndarray, fractions: Sequence[float]) -> Optional[np.ndarray]:
    peri = polygon_perimeter(poly)
    near_quad = None
    for frac in fractions:
        approx = approx_closed_polygon(poly, frac * peri)
        if len(approx) == 4:
            return approx
        if 4 < len(approx) <= 8 and near_quad is None:
            near_quad = approx
        if len(approx) < 4:
            break
    if near_quad is not None:
        return extreme_points(near_quad)
    return None


def rectangularity(corners: DocumentCorners) -> float:
    """Blend of opposite-side-length agreement and right-angle closeness, in [0, 1]."""
    top, right, bottom, left = corners.side_lengths()
    if min(top, right, bottom, left) <= 1e-6:
        return 0.0
    side_ratio = (min(top, bottom) / max(top, bottom) + min(left, right) / max(left, right)) / 2.0
    angles = corner_angles(corners.as_array().astype(np.float64))
    angle_score = float(np.clip(1.0 - np.abs(angles - 90.0) / 90.0, 0.0, 1.0).mean())
    return float(0.5 * side_ratio + 0.5 * angle_score)
