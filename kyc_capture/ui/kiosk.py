from PyQt6 import QtCore, QtWidgets

from kyc_capture.app.config import AppConfig, load_config
from kyc_capture.models.uploads import DirectoryUploadService
from .scan_view import ScanView, make_landmarks


class KioskApp(QtWidgets.QMainWindow):
    def __init__(self, cfg: AppConfig, fullscreen: bool = True):
        super().__init__()
        self.cfg = cfg
        self.setWindowTitle("KYC Capture")
        if fullscreen:
            self.setCursor(QtCore.Qt.CursorShape.BlankCursor)
            self.showFullScreen()

        self.uploads = DirectoryUploadService(cfg.paths.output_dir)
        self.scan = ScanView(cfg, self.uploads, make_landmarks())
        self.scan.captured.connect(self._on_captured)
        self.setCentralWidget(self.scan)

        from PyQt6 import QtGui
        QtGui.QShortcut(QtGui.QKeySequence("Esc"), self, activated=self.close)
        QtGui.QShortcut(QtGui.QKeySequence("F5"), self, activated=self.scan.retry)

    def _on_captured(self, kind: str, size: int) -> None:
        self.statusBar().showMessage(f"{kind} captured ({size} bytes)", 3000)

    def closeEvent(self, e) -> None:
        self.scan.stop()
        return super().closeEvent(e)


def run(cfg: AppConfig = None, fullscreen: bool = True):
    cfg = cfg or load_config()
    app = QtWidgets.QApplication([])
    win = KioskApp(cfg, fullscreen=fullscreen)
    win.show()
    app.exec()
