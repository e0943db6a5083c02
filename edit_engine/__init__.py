"""
================================================================================
MEDIA EDIT ENGINE - Operation Compilation & Execution
================================================================================
Turns structured edit operations into FFmpeg invocations and runs them on the
remote processing service or a local binary.

The facade lives in edit_engine.orchestrator (MediaEditEngine,
create_edit_engine). It is not re-exported here because it depends on the
storage package, which in turn imports this package's leaf modules.
================================================================================
"""

__version__ = "1.0.0"

from .config import EngineConfig

from .errors import (
    MediaEngineError,
    ResolutionError,
    ValidationError,
    UnsupportedOperation,
    BackendUnavailable,
    InvocationError,
    EngineSpawnError,
    NetworkError,
    UploadError,
    CleanupError,
)

from .operation_catalog import (
    OperationKind,
    OperationDescriptor,
    OperationCatalog,
    CompiledInvocation,
    CompileContext,
    MediaInfo,
    default_catalog,
)

__all__ = [
    "__version__",
    "EngineConfig",
    "MediaEngineError",
    "ResolutionError",
    "ValidationError",
    "UnsupportedOperation",
    "BackendUnavailable",
    "InvocationError",
    "EngineSpawnError",
    "NetworkError",
    "UploadError",
    "CleanupError",
    "OperationKind",
    "OperationDescriptor",
    "OperationCatalog",
    "CompiledInvocation",
    "CompileContext",
    "MediaInfo",
    "default_catalog",
]
