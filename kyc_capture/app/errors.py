"""
Capture error taxonomy.

Only InitializationFailure and CaptureFailure are raised or reported to the
host. Detection misses and degenerate geometry are absorbed by the pipeline
and show up only as status text.
"""


class CaptureError(Exception):
    """Base exception for capture engine errors"""
    def __init__(self, message, error_code, details=None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self):
        """Convert error to JSON-serializable dict"""
        return {
            "success": False,
            "error": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class InitializationFailure(CaptureError):
    """Landmark model failed to load or produced no result in time"""
    def __init__(self, reason=None):
        super().__init__(
            message="Face landmark model could not be initialized",
            error_code="MODEL_INIT_FAILED",
            details={
                "reason": reason,
                "suggestion": "Use manual capture instead of the head-turn challenge",
            },
        )


class CaptureFailure(CaptureError):
    """Rectification or encoding of a capture failed"""
    def __init__(self, kind, reason=None):
        super().__init__(
            message=f"Failed to produce {kind} capture",
            error_code="CAPTURE_FAILED",
            details={
                "kind": kind,
                "reason": reason,
                "suggestion": "Hold still; another capture will be attempted",
            },
        )
