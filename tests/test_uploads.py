import os

from kyc_capture.models.base import CaptureBuffer, CaptureKind, DocumentType
from kyc_capture.models.uploads import DirectoryUploadService, capture_filename, submit_capture


def test_filenames():
    doc = CaptureBuffer(b"x", CaptureKind.DOCUMENT, DocumentType.DRIVING_LICENSE, 10, 10, 1.5)
    face = CaptureBuffer(b"x", CaptureKind.FACE, None, 10, 10, 2.0)
    assert capture_filename(doc) == "document_DrivingLicense_1500.jpg"
    assert capture_filename(face) == "face_2000.jpg"


def test_directory_service_writes_files(tmp_path):
    out = tmp_path / "captures" / "nested"
    svc = DirectoryUploadService(str(out))
    svc.submit(CaptureBuffer(b"\xff\xd8data", CaptureKind.DOCUMENT, DocumentType.CNIC, 10, 10, 3.0))
    assert len(svc.saved) == 1
    path = svc.saved[0]
    assert os.path.basename(path) == "document_CNIC_3000.jpg"
    with open(path, "rb") as f:
        assert f.read() == b"\xff\xd8data"


class FailingService:
    def submit(self, buffer):
        raise OSError("No space left on device")


def test_submit_capture_reports_storage_errors(tmp_path):
    buf = CaptureBuffer(b"x", CaptureKind.FACE, None, 10, 10, 1.0)
    msg = submit_capture(FailingService(), buf)
    assert msg is not None and "No space left" in msg
    assert submit_capture(DirectoryUploadService(str(tmp_path)), buf) is None
