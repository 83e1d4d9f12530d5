import json
import logging
import os
from typing import Optional

import typer
import uvicorn

from kyc_capture.app.config import PROFILES, AppConfig, apply_profile, load_config
from kyc_capture.app.errors import CaptureError
from kyc_capture.app.utils import decode_image
from kyc_capture.models.base import DocumentType, Frame
from kyc_capture.pipeline.document_finder import DocumentQuadFinder
from kyc_capture.pipeline.quality import QualityScorer
from kyc_capture.pipeline.rectify import PerspectiveRectifier


app = typer.Typer(name="kyc-capture")


def _setup(config: Optional[str]) -> AppConfig:
    cfg = load_config(config)
    logging.basicConfig(
        level=getattr(logging, cfg.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return cfg


@app.command()
def scan(config: Optional[str] = None, windowed: bool = False):
    """Run the PyQt6 capture UI (document scan and head-turn liveness)."""
    from kyc_capture.ui.kiosk import run as run_ui

    cfg = _setup(config)
    run_ui(cfg, fullscreen=not windowed)


@app.command()
def api(host: str = "127.0.0.1", port: int = 8000, config: Optional[str] = None):
    """Run the FastAPI still-image service."""
    cfg = _setup(config)
    if config:
        os.environ["KYC_CAPTURE_CONFIG"] = config
    uvicorn.run("kyc_capture.api.server:app", host=host, port=port, reload=False, log_level=cfg.log_level.lower())


@app.command()
def analyze(
    image: str,
    profile: Optional[str] = None,
    out: Optional[str] = None,
    document_type: str = DocumentType.CNIC.value,
    config: Optional[str] = None,
):
    """Detect a document in IMAGE; print corners and quality, optionally write the rectified JPEG."""
    cfg = _setup(config)
    try:
        if profile:
            cfg = apply_profile(cfg, profile)
        with open(image, "rb") as f:
            frame = Frame.from_array(decode_image(f.read()))
    except (OSError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=2)

    cand = DocumentQuadFinder(cfg.document).find(frame)
    if cand is None:
        typer.echo(json.dumps({"detected": False, "profile": cfg.document.profile}))
        raise typer.Exit(code=1)
    quality = QualityScorer(cfg.quality).quality(cand.corners, frame.width, frame.height)
    report = {
        "detected": True,
        "profile": cfg.document.profile,
        "corners": cand.corners.to_list(),
        "quality": round(quality, 4),
        "rectangularity": round(cand.rectangularity, 4),
        "score": round(cand.score, 4),
    }
    if out:
        try:
            buf = PerspectiveRectifier(cfg.rectify).capture(frame, cand.corners, DocumentType(document_type))
        except (CaptureError, ValueError) as e:
            msg = e.to_dict() if isinstance(e, CaptureError) else {"error": str(e)}
            typer.echo(json.dumps(msg), err=True)
            raise typer.Exit(code=3)
        with open(out, "wb") as f:
            f.write(buf.data)
        report["output"] = {"path": out, "width": buf.width, "height": buf.height}
    typer.echo(json.dumps(report))


@app.command()
def profiles():
    """List the named detector profiles."""
    for name in sorted(PROFILES):
        prof = PROFILES[name]
        fields = {**prof["document"], **prof["quality"]}
        typer.echo(f"{name}: " + ", ".join(f"{k}={v}" for k, v in fields.items()))


if __name__ == "__main__":
    app()
