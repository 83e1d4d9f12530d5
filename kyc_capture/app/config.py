import logging
import os
import yaml
from dataclasses import dataclass, field, fields, replace
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)


DEFAULT_CONFIG_PATHS = [
    ".kyc-capture.yaml",
    "./config.yaml",
    "/etc/kyc-capture/config.yaml",
]


@dataclass
class CameraConfig:
    device_index: int = 0
    width: int = 1280
    height: int = 720
    fps: int = 30
    tick_ms: int = 33


@dataclass
class DocumentConfig:
    profile: str = "lenient"
    downscale: float = 0.5  # s in (0, 1]
    edge_threshold: float = 40.0
    sample_stride: int = 2
    min_contour_pixels: int = 60
    max_contour_pixels: int = 20000
    max_total_pixels: int = 15000
    min_area_ratio: float = 0.05
    max_area_ratio: float = 0.95
    epsilon_fractions: Tuple[float, ...] = (0.01, 0.015, 0.02, 0.03, 0.04, 0.05, 0.06, 0.08)
    area_weight: float = 0.4
    rect_weight: float = 0.6


@dataclass
class QualityConfig:
    floor: float = 0.5
    edge_margin: float = 20.0
    min_aspect: float = 0.2
    max_aspect: float = 5.0
    min_area_ratio: float = 0.05
    max_area_ratio: float = 0.98
    angle_tolerance_deg: float = 25.0


@dataclass
class StabilityConfig:
    accept_threshold: float = 0.7
    high_quality: float = 0.85
    fast_frames: int = 4
    slow_frames: int = 6
    decay_step: int = 1
    history_size: int = 8
    reference_refresh: int = 3
    # Mean corner drift (px) tolerated against the reference; 0 disables the check
    max_corner_shift: float = 25.0
    smoothing_alpha: float = 0.3


@dataclass
class RectifyConfig:
    mode: str = "homography"  # homography|crop
    jpeg_quality: int = 92


@dataclass
class LivenessConfig:
    center_threshold: float = 0.05
    turn_threshold: float = 0.08
    done_threshold: float = 0.08
    hold_frames_center: int = 12
    hold_frames_turn: int = 12
    min_face_width: float = 0.08
    guide_radius_ratio: float = 0.45
    mirror: bool = True  # flip x so yaw follows the user, not the raw camera image
    no_face_grace: float = 2.0
    init_timeout: float = 8.0
    no_face_policy: str = "keep"  # keep|reset
    multi_face_policy: str = "reject"  # reject|primary


@dataclass
class CaptureConfig:
    frame_skip: int = 2
    capture_threshold: float = 0.7
    cooldown: float = 2.5
    document_type: str = "CNIC"


@dataclass
class Paths:
    output_dir: str = os.path.abspath("./captures")


@dataclass
class AppConfig:
    camera: CameraConfig = field(default_factory=CameraConfig)
    document: DocumentConfig = field(default_factory=DocumentConfig)
    quality: QualityConfig = field(default_factory=QualityConfig)
    stability: StabilityConfig = field(default_factory=StabilityConfig)
    rectify: RectifyConfig = field(default_factory=RectifyConfig)
    liveness: LivenessConfig = field(default_factory=LivenessConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    paths: Paths = field(default_factory=Paths)
    log_level: str = "INFO"


# Detector profiles: overrides for the document and quality sections
PROFILES: Dict[str, Dict[str, dict]] = {
    "lenient": {
        "document": dict(edge_threshold=40.0, min_area_ratio=0.05, max_area_ratio=0.95),
        "quality": dict(min_aspect=0.2, max_aspect=5.0, angle_tolerance_deg=25.0),
    },
    "strict": {
        "document": dict(edge_threshold=50.0, min_area_ratio=0.10, max_area_ratio=0.90),
        "quality": dict(min_aspect=0.5, max_aspect=2.0, angle_tolerance_deg=15.0),
    },
}


def apply_profile(cfg: AppConfig, name: str) -> AppConfig:
    """Return a copy of ``cfg`` with the named detector profile applied."""
    if name not in PROFILES:
        raise ValueError(f"Unknown detector profile: {name!r} (known: {', '.join(sorted(PROFILES))})")
    prof = PROFILES[name]
    return replace(
        cfg,
        document=replace(cfg.document, profile=name, **prof["document"]),
        quality=replace(cfg.quality, **prof["quality"]),
    )


def _known(cls, data: dict) -> dict:
    names = {f.name for f in fields(cls)}
    unknown = set(data) - names
    if unknown:
        logger.warning(f"Ignoring unknown {cls.__name__} keys: {sorted(unknown)}")
    return {k: v for k, v in data.items() if k in names}


def config_from_dict(data: dict) -> AppConfig:
    """Build an AppConfig from a parsed YAML mapping.

    Profile overrides are applied first so that explicit keys in the
    ``document``/``quality`` sections take precedence over them.
    """
    doc = dict(data.get("document") or {})
    profile = doc.get("profile", DocumentConfig.profile)
    cfg = apply_profile(AppConfig(), profile)

    document = {**cfg.document.__dict__, **_known(DocumentConfig, doc)}
    if "epsilon_fractions" in doc:
        document["epsilon_fractions"] = tuple(float(e) for e in doc["epsilon_fractions"])
    cfg.document = DocumentConfig(**document)
    cfg.quality = QualityConfig(**{**cfg.quality.__dict__, **_known(QualityConfig, data.get("quality") or {})})
    cfg.camera = CameraConfig(**_known(CameraConfig, data.get("camera") or {}))
    cfg.stability = StabilityConfig(**_known(StabilityConfig, data.get("stability") or {}))
    cfg.rectify = RectifyConfig(**_known(RectifyConfig, data.get("rectify") or {}))
    cfg.liveness = LivenessConfig(**_known(LivenessConfig, data.get("liveness") or {}))
    cfg.capture = CaptureConfig(**_known(CaptureConfig, data.get("capture") or {}))
    cfg.paths = Paths(**_known(Paths, data.get("paths") or {}))
    cfg.log_level = str(data.get("log_level", cfg.log_level)).upper()
    return cfg


def load_config(path: Optional[str] = None) -> AppConfig:
    candidates = [path] if path else [os.environ.get("KYC_CAPTURE_CONFIG", "")] + DEFAULT_CONFIG_PATHS
    cfg = AppConfig()
    for p in [p for p in candidates if p]:
        if not os.path.exists(p):
            continue
        try:
            with open(p, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            cfg = config_from_dict(data)
            logger.info(f"Loaded configuration from {p} (profile={cfg.document.profile})")
        except (yaml.YAMLError, TypeError, ValueError) as e:
            # Fall back to defaults on parse errors
            logger.warning(f"Could not load config {p}: {e}; using defaults")
            cfg = AppConfig()
        break
    return cfg
