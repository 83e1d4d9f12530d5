from typing import List, Optional

from fastapi import FastAPI, UploadFile, File, Form
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from kyc_capture.app.config import PROFILES, apply_profile, load_config
from kyc_capture.app.errors import CaptureError
from kyc_capture.app.utils import decode_image
from kyc_capture.models.base import DocumentType, Frame
from kyc_capture.pipeline.document_finder import DocumentQuadFinder
from kyc_capture.pipeline.quality import QualityScorer
from kyc_capture.pipeline.rectify import PerspectiveRectifier


app = FastAPI(title="KYC Capture API", version="0.1.0")
cfg = load_config()


class DetectResponse(BaseModel):
    detected: bool
    corners: Optional[List[List[float]]] = None
    quality: float = 0.0
    rectangularity: float = 0.0
    score: float = 0.0
    profile: str


CLIENT_ERRORS = {"INVALID_IMAGE", "UNKNOWN_PROFILE", "UNKNOWN_DOCUMENT_TYPE"}


@app.exception_handler(CaptureError)
def capture_error_handler(request, exc: CaptureError):
    status = 400 if exc.error_code in CLIENT_ERRORS else 500
    return JSONResponse(status_code=status, content=exc.to_dict())


def _read_frame(file: UploadFile) -> Frame:
    raw = file.file.read()
    try:
        img = decode_image(raw)
    except ValueError as e:
        raise CaptureError(str(e), "INVALID_IMAGE") from e
    return Frame.from_array(img)


def _profile_config(profile: Optional[str]):
    if not profile:
        return cfg
    try:
        return apply_profile(cfg, profile)
    except ValueError as e:
        raise CaptureError(str(e), "UNKNOWN_PROFILE", {"known": sorted(PROFILES)}) from e


def _analyze(frame: Frame, profile: Optional[str]):
    c = _profile_config(profile)
    cand = DocumentQuadFinder(c.document).find(frame)
    return c, cand


@app.get("/health")
def health():
    return {"status": "ok", "profile": cfg.document.profile, "profiles": sorted(PROFILES)}


@app.post("/document/detect", response_model=DetectResponse)
def detect(file: UploadFile = File(...), profile: Optional[str] = Form(None)):
    frame = _read_frame(file)
    c, cand = _analyze(frame, profile)
    if cand is None:
        return DetectResponse(detected=False, profile=c.document.profile)
    quality = QualityScorer(c.quality).quality(cand.corners, frame.width, frame.height)
    return DetectResponse(
        detected=True,
        corners=cand.corners.to_list(),
        quality=quality,
        rectangularity=cand.rectangularity,
        score=cand.score,
        profile=c.document.profile,
    )


@app.post("/document/rectify")
def rectify(
    file: UploadFile = File(...),
    profile: Optional[str] = Form(None),
    document_type: str = Form(DocumentType.CNIC.value),
):
    frame = _read_frame(file)
    c, cand = _analyze(frame, profile)
    if cand is None:
        return JSONResponse(
            status_code=422,
            content={"success": False, "error": "No document found in image", "error_code": "NO_DOCUMENT", "details": {}},
        )
    try:
        doc_type = DocumentType(document_type)
    except ValueError as e:
        raise CaptureError(str(e), "UNKNOWN_DOCUMENT_TYPE", {"known": [d.value for d in DocumentType]}) from e
    buf = PerspectiveRectifier(c.rectify).capture(frame, cand.corners, doc_type)
    return Response(
        content=buf.data,
        media_type="image/jpeg",
        headers={"X-Document-Type": doc_type.value, "X-Image-Size": f"{buf.width}x{buf.height}"},
    )
