"""
================================================================================
EDIT ENGINE - Error Taxonomy
================================================================================
Every failure raised while compiling, executing or publishing an edit carries an
``error_kind`` string. The engine facade converts these into the uniform
``EngineResult`` shape so callers never see raw process or HTTP exceptions.

CleanupError is the only non-fatal kind: it is logged and swallowed.
================================================================================
"""

from typing import Optional


class MediaEngineError(Exception):
    """Base class for all engine failures"""

    error_kind = "MediaEngineError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ResolutionError(MediaEngineError):
    """Source media could not be fetched"""

    error_kind = "ResolutionError"

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ValidationError(MediaEngineError):
    """Descriptor or parameter outside its schema"""

    error_kind = "ValidationError"

    def __init__(self, message: str, operation: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message)
        self.operation = operation
        self.field = field


class UnsupportedOperation(ValidationError):
    """Unknown operation kind, style id or filter name"""

    error_kind = "UnsupportedOperation"


class BackendUnavailable(MediaEngineError):
    """Neither the remote service nor the local binary can be used"""

    error_kind = "BackendUnavailable"


class InvocationError(MediaEngineError):
    """Local engine exited non-zero"""

    error_kind = "InvocationError"

    def __init__(
        self,
        message: str,
        returncode: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
    ):
        super().__init__(message)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class EngineSpawnError(InvocationError):
    """Local engine binary missing or not executable"""

    def __init__(self, message: str, binary: Optional[str] = None):
        super().__init__(message)
        self.binary = binary


class NetworkError(MediaEngineError):
    """Remote processing service call failed or returned non-2xx"""

    error_kind = "NetworkError"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UploadError(MediaEngineError):
    """Durable storage write failed"""

    error_kind = "UploadError"


class CleanupError(MediaEngineError):
    """Temp artifact removal failed (log-only)"""

    error_kind = "CleanupError"

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path
