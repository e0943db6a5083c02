"""
================================================================================
EDIT ENGINE - Operation Catalog
================================================================================
Static registry of the supported edit operations. Each operation kind has one
parameter model that validates its inputs and compiles itself into an FFmpeg
invocation. The compiled form does not depend on which backend executes it, so
local and remote processing stay semantically equivalent.

Operation kinds (wire names):
  trimVideo, adjustSpeed, adjustBrightness, addText, cropVideo, rotateVideo,
  adjustVolume, applyFilter, cropToAspectRatio, enhanceColors, stabilizeVideo,
  normalizeAudio
================================================================================
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, List, Literal, Mapping, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticCustomError

from .errors import UnsupportedOperation, ValidationError

logger = logging.getLogger("mediaedit.catalog")


# =============================================================================
# OPERATION KINDS
# =============================================================================

class OperationKind(str, Enum):
    TRIM = "trimVideo"
    ADJUST_SPEED = "adjustSpeed"
    ADJUST_BRIGHTNESS = "adjustBrightness"
    ADD_TEXT = "addText"
    CROP = "cropVideo"
    ROTATE = "rotateVideo"
    ADJUST_VOLUME = "adjustVolume"
    APPLY_FILTER = "applyFilter"
    CROP_TO_ASPECT_RATIO = "cropToAspectRatio"
    ENHANCE_COLORS = "enhanceColors"
    STABILIZE = "stabilizeVideo"
    NORMALIZE_AUDIO = "normalizeAudio"


# Fixed 3x3 colour-mix matrices
GRAYSCALE_MATRIX = "colorchannelmixer=.3:.4:.3:0:.3:.4:.3:0:.3:.4:.3"
SEPIA_MATRIX = "colorchannelmixer=.393:.769:.189:0:.349:.686:.168:0:.272:.534:.131"

LOOK_FILTERS = {
    "grayscale": GRAYSCALE_MATRIX,
    "sepia": SEPIA_MATRIX,
    "cinematic": "eq=contrast=1.2:brightness=0.1:saturation=1.1,curves=all='0/0 0.5/0.58 1/1'",
    "vintage": f"eq=contrast=0.9:brightness=0.05:saturation=0.8,{SEPIA_MATRIX}",
}
SCALED_FILTERS = ("blur", "sharpen")
FILTER_NAMES = tuple(LOOK_FILTERS) + SCALED_FILTERS

# Filters the remote service renders identically
REMOTE_FILTERS = ("cinematic", "vintage")

TEXT_Y_POSITIONS = {
    "top": "10",
    "center": "(h-th)/2",
    "bottom": "h-th-10",
}

ASPECT_RATIOS = {
    "16:9": (16, 9),
    "9:16": (9, 16),
    "1:1": (1, 1),
    "4:3": (4, 3),
}


def format_number(value: Union[int, float]) -> str:
    """Render a number compactly for an FFmpeg argument (0.1, -1, 2)"""
    text = f"{float(value):.6f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


def escape_drawtext(text: str) -> str:
    """
    Quote text as a drawtext value inside an -vf graph.

    Three parsers see it: drawtext expansion (backslash, %), the option
    parser (backslash, quote, colon) and the graph parser, where a quote
    inside a quoted span is written as '\\''.
    """
    expanded = text.replace("\\", "\\\\").replace("%", "\\%")
    value = expanded.replace("\\", "\\\\").replace("'", "\\'").replace(":", "\\:")
    return "'" + value.replace("'", "'\\''") + "'"


# =============================================================================
# COMPILED FORM
# =============================================================================

class MediaInfo(BaseModel):
    """Probed source attributes"""
    duration: Optional[float] = None
    width: Optional[int] = None
    height: Optional[int] = None
    has_audio: bool = True


@dataclass(frozen=True)
class CompileContext:
    """What compilation may know about the stage input"""
    source: Optional[MediaInfo] = None


@dataclass(frozen=True)
class CompiledInvocation:
    """
    Backend-agnostic FFmpeg invocation for one operation.

    ``arguments`` sit between the input and the output path;
    ``filter_expression`` is the filter graph (empty for stream-copy trims).
    """
    operation: OperationKind
    arguments: Tuple[str, ...]
    filter_expression: str = ""

    def render(self, input_path: str, output_path: str) -> List[str]:
        return ["-i", input_path, *self.arguments, "-y", output_path]


def _video_filter(kind: OperationKind, expression: str) -> CompiledInvocation:
    return CompiledInvocation(kind, ("-vf", expression), expression)


def _audio_filter(kind: OperationKind, expression: str) -> CompiledInvocation:
    return CompiledInvocation(kind, ("-af", expression), expression)


# =============================================================================
# PARAMETER MODELS
# =============================================================================

class OperationParams(BaseModel):
    """Base class for one operation kind's parameter schema"""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    kind: ClassVar[OperationKind]
    needs_source_info: ClassVar[bool] = False

    def compile(self, context: CompileContext) -> CompiledInvocation:
        raise NotImplementedError

    def remote_capable(self) -> bool:
        """True when the remote service renders this exactly like the local engine"""
        return False

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class TrimParams(OperationParams):
    kind: ClassVar[OperationKind] = OperationKind.TRIM
    needs_source_info: ClassVar[bool] = True

    start: float = Field(..., alias="startTime", ge=0)
    end: float = Field(..., alias="endTime", gt=0)
    reencode: bool = False

    @model_validator(mode="after")
    def _check_window(self) -> "TrimParams":
        if self.start >= self.end:
            raise ValueError(f"start ({self.start}) must be before end ({self.end})")
        return self

    def compile(self, context: CompileContext) -> CompiledInvocation:
        source = context.source
        if source is not None and source.duration is not None:
            # Allow container rounding on the reported duration
            if self.end > source.duration + 0.05:
                raise ValidationError(
                    f"end ({self.end}s) is past the source duration ({source.duration:.3f}s)",
                    operation=self.kind.value,
                    field="end",
                )
        args = ["-ss", format_number(self.start), "-t", format_number(self.end - self.start)]
        if not self.reencode:
            args += ["-c", "copy"]
        return CompiledInvocation(self.kind, tuple(args))

    def remote_capable(self) -> bool:
        return True


class AdjustSpeedParams(OperationParams):
    kind: ClassVar[OperationKind] = OperationKind.ADJUST_SPEED

    factor: float = Field(..., alias="speed", ge=0.5, le=2.0)

    def compile(self, context: CompileContext) -> CompiledInvocation:
        # setpts stretches time (inverse), atempo scales tempo (direct)
        video = f"[0:v]setpts={format_number(1 / self.factor)}*PTS[v]"
        has_audio = context.source is None or context.source.has_audio
        if has_audio:
            graph = f"{video};[0:a]atempo={format_number(self.factor)}[a]"
            args = ("-filter_complex", graph, "-map", "[v]", "-map", "[a]")
        else:
            graph = video
            args = ("-filter_complex", graph, "-map", "[v]")
        return CompiledInvocation(self.kind, args, graph)

    def remote_capable(self) -> bool:
        return True


class AdjustBrightnessParams(OperationParams):
    kind: ClassVar[OperationKind] = OperationKind.ADJUST_BRIGHTNESS

    delta: float = Field(..., alias="brightness", ge=-100, le=100)

    @property
    def engine_value(self) -> float:
        """Map -100..100 onto the eq filter's -1..1 brightness domain"""
        return ((self.delta + 100) / 100) - 1

    def compile(self, context: CompileContext) -> CompiledInvocation:
        return _video_filter(self.kind, f"eq=brightness={format_number(self.engine_value)}")

    def remote_capable(self) -> bool:
        return True


class AddTextParams(OperationParams):
    kind: ClassVar[OperationKind] = OperationKind.ADD_TEXT

    text: str = Field(..., min_length=1, max_length=500)
    position: Literal["top", "center", "bottom"] = "center"
    start: Optional[float] = Field(None, alias="startTime", ge=0)
    end: Optional[float] = Field(None, alias="endTime", ge=0)
    font_size: int = Field(24, alias="fontSize", ge=8, le=200)
    color: str = Field("white", pattern=r"^([A-Za-z]+|#?[0-9A-Fa-f]{6})$")

    @model_validator(mode="after")
    def _check_window(self) -> "AddTextParams":
        if self.start is not None and self.end is not None and self.start >= self.end:
            raise ValueError(f"start ({self.start}) must be before end ({self.end})")
        return self

    def enable_expression(self) -> Optional[str]:
        if self.start is not None and self.end is not None:
            return f"between(t,{format_number(self.start)},{format_number(self.end)})"
        if self.start is not None:
            return f"gte(t,{format_number(self.start)})"
        if self.end is not None:
            return f"lte(t,{format_number(self.end)})"
        return None

    def compile(self, context: CompileContext) -> CompiledInvocation:
        expression = (
            f"drawtext=text={escape_drawtext(self.text)}"
            f":fontcolor={self.color}:fontsize={self.font_size}"
            f":x=(w-tw)/2:y={TEXT_Y_POSITIONS[self.position]}"
        )
        window = self.enable_expression()
        if window:
            expression += f":enable='{window}'"
        return _video_filter(self.kind, expression)

    def remote_capable(self) -> bool:
        return (
            self.position == "center"
            and self.enable_expression() is None
            and self.font_size == 24
            and self.color == "white"
        )


class CropParams(OperationParams):
    kind: ClassVar[OperationKind] = OperationKind.CROP

    x: int = Field(0, ge=0)
    y: int = Field(0, ge=0)
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)

    def compile(self, context: CompileContext) -> CompiledInvocation:
        source = context.source
        if source is not None and source.width and source.height:
            if self.x + self.width > source.width or self.y + self.height > source.height:
                raise ValidationError(
                    f"crop box {self.width}x{self.height}+{self.x}+{self.y} exceeds "
                    f"source frame {source.width}x{source.height}",
                    operation=self.kind.value,
                )
        return _video_filter(self.kind, f"crop={self.width}:{self.height}:{self.x}:{self.y}")

    def remote_capable(self) -> bool:
        return True


class RotateParams(OperationParams):
    kind: ClassVar[OperationKind] = OperationKind.ROTATE

    degrees: int

    @field_validator("degrees")
    @classmethod
    def _check_degrees(cls, v: int) -> int:
        if v not in (90, 180, 270):
            raise ValueError("degrees must be one of 90, 180, 270")
        return v

    def compile(self, context: CompileContext) -> CompiledInvocation:
        if self.degrees == 90:
            expression = "transpose=1"
        elif self.degrees == 270:
            expression = "transpose=2"
        else:
            expression = "transpose=2,transpose=2"
        return _video_filter(self.kind, expression)


class AdjustVolumeParams(OperationParams):
    kind: ClassVar[OperationKind] = OperationKind.ADJUST_VOLUME

    multiplier: float = Field(..., alias="volume", ge=0.0, le=2.0)

    def compile(self, context: CompileContext) -> CompiledInvocation:
        return _audio_filter(self.kind, f"volume={format_number(self.multiplier)}")


class ApplyFilterParams(OperationParams):
    kind: ClassVar[OperationKind] = OperationKind.APPLY_FILTER

    name: str = Field(..., alias="filter")
    intensity: float = Field(1.0, ge=0.0, le=1.0)

    @field_validator("name", mode="before")
    @classmethod
    def _check_name(cls, v: Any) -> str:
        name = str(v).strip().lower()
        if name not in FILTER_NAMES:
            raise PydanticCustomError(
                "unsupported_filter",
                "Unknown filter: {name}",
                {"name": name},
            )
        return name

    def compile(self, context: CompileContext) -> CompiledInvocation:
        if self.name in LOOK_FILTERS:
            return _video_filter(self.kind, LOOK_FILTERS[self.name])
        if self.name == "blur":
            return _video_filter(self.kind, f"gblur=sigma={format_number(self.intensity * 2)}")
        return _video_filter(self.kind, f"unsharp=5:5:{format_number(self.intensity)}:5:5:0")

    def remote_capable(self) -> bool:
        return self.name in REMOTE_FILTERS


def largest_centered_box(width: int, height: int, ratio: str) -> "CropParams":
    """Largest centred crop of ``ratio`` that fits a width x height frame"""
    rw, rh = ASPECT_RATIOS[ratio]
    if width * rh >= height * rw:
        box_h = height
        box_w = height * rw / rh
    else:
        box_w = width
        box_h = width * rh / rw
    # Even dimensions keep yuv420p encoders happy
    box_w = max(2, int(box_w) // 2 * 2)
    box_h = max(2, int(box_h) // 2 * 2)
    return CropParams(
        x=(width - box_w) // 2,
        y=(height - box_h) // 2,
        width=box_w,
        height=box_h,
    )


class CropToAspectRatioParams(OperationParams):
    kind: ClassVar[OperationKind] = OperationKind.CROP_TO_ASPECT_RATIO
    needs_source_info: ClassVar[bool] = True

    ratio: Literal["16:9", "9:16", "1:1", "4:3"]

    def compile(self, context: CompileContext) -> CompiledInvocation:
        source = context.source
        if source is None or not source.width or not source.height:
            raise ValidationError(
                "cropToAspectRatio needs the source frame size",
                operation=self.kind.value,
            )
        box = largest_centered_box(source.width, source.height, self.ratio)
        crop = box.compile(context)
        return CompiledInvocation(self.kind, crop.arguments, crop.filter_expression)


class EnhanceColorsParams(OperationParams):
    kind: ClassVar[OperationKind] = OperationKind.ENHANCE_COLORS

    saturation: float = Field(1.2, ge=0.0, le=3.0)

    def compile(self, context: CompileContext) -> CompiledInvocation:
        return _video_filter(self.kind, f"eq=saturation={format_number(self.saturation)}:contrast=1.1")


class StabilizeParams(OperationParams):
    kind: ClassVar[OperationKind] = OperationKind.STABILIZE

    def compile(self, context: CompileContext) -> CompiledInvocation:
        return _video_filter(self.kind, "deshake")


class NormalizeAudioParams(OperationParams):
    kind: ClassVar[OperationKind] = OperationKind.NORMALIZE_AUDIO

    def compile(self, context: CompileContext) -> CompiledInvocation:
        return _audio_filter(self.kind, "loudnorm=I=-16:TP=-1.5:LRA=11")


OPERATION_VARIANTS: Dict[OperationKind, Type[OperationParams]] = {
    variant.kind: variant
    for variant in (
        TrimParams,
        AdjustSpeedParams,
        AdjustBrightnessParams,
        AddTextParams,
        CropParams,
        RotateParams,
        AdjustVolumeParams,
        ApplyFilterParams,
        CropToAspectRatioParams,
        EnhanceColorsParams,
        StabilizeParams,
        NormalizeAudioParams,
    )
}

_unmapped = set(OperationKind) - set(OPERATION_VARIANTS)
if _unmapped:
    raise RuntimeError(f"Operation kinds without a parameter model: {sorted(k.value for k in _unmapped)}")


# =============================================================================
# DESCRIPTOR
# =============================================================================

class OperationDescriptor(BaseModel):
    """One requested transformation"""
    kind: OperationKind
    parameters: Dict[str, Any] = Field(default_factory=dict)
    order: int = 0


# =============================================================================
# CATALOG
# =============================================================================

class OperationCatalog:
    """
    Registry of operation kinds.

    ``validate`` must succeed for every descriptor before anything is
    downloaded, spawned or sent over the network.
    """

    def __init__(self, variants: Optional[Mapping[OperationKind, Type[OperationParams]]] = None):
        self._variants: Dict[OperationKind, Type[OperationParams]] = dict(variants or OPERATION_VARIANTS)

    def kinds(self) -> List[OperationKind]:
        return list(self._variants)

    def resolve_kind(self, kind: Union[str, OperationKind]) -> OperationKind:
        if isinstance(kind, OperationKind):
            if kind in self._variants:
                return kind
        else:
            wanted = str(kind).strip()
            for known in self._variants:
                if wanted == known.value or wanted.upper() == known.name:
                    return known
        raise UnsupportedOperation(f"Unsupported operation: {kind}", operation=str(kind))

    def descriptor(
        self,
        kind: Union[str, OperationKind],
        parameters: Optional[Mapping[str, Any]] = None,
        order: int = 0,
    ) -> OperationDescriptor:
        """Build a descriptor from wire values, rejecting unknown kinds"""
        return OperationDescriptor(
            kind=self.resolve_kind(kind),
            parameters=dict(parameters or {}),
            order=order,
        )

    def validate(self, descriptor: OperationDescriptor) -> OperationParams:
        kind = self.resolve_kind(descriptor.kind)
        variant = self._variants[kind]
        try:
            return variant.model_validate(descriptor.parameters)
        except PydanticValidationError as e:
            for err in e.errors():
                if err["type"] == "unsupported_filter":
                    raise UnsupportedOperation(err["msg"], operation=kind.value, field="filter") from e
            first = e.errors()[0]
            field = ".".join(str(p) for p in first.get("loc", ())) or None
            raise ValidationError(
                f"Invalid parameters for {kind.value}: {first['msg']}"
                + (f" ({field})" if field else ""),
                operation=kind.value,
                field=field,
            ) from e

    def validate_all(self, descriptors: List[OperationDescriptor]) -> List[OperationParams]:
        return [self.validate(d) for d in descriptors]

    def compile(
        self,
        descriptor: OperationDescriptor,
        context: Optional[CompileContext] = None,
    ) -> CompiledInvocation:
        params = self.validate(descriptor)
        invocation = params.compile(context or CompileContext())
        logger.debug(f"[Catalog] Compiled {descriptor.kind.value}: {' '.join(invocation.arguments)}")
        return invocation

    def needs_source_info(self, descriptor: OperationDescriptor) -> bool:
        return self._variants[self.resolve_kind(descriptor.kind)].needs_source_info

    def is_remote_capable(self, descriptor: OperationDescriptor) -> bool:
        return self.validate(descriptor).remote_capable()

    def to_wire(self, descriptor: OperationDescriptor) -> Dict[str, Any]:
        """Descriptor as the remote service's {type, parameters, order}"""
        params = self.validate(descriptor)
        return {
            "type": descriptor.kind.value,
            "parameters": params.to_wire(),
            "order": descriptor.order,
        }

    def describe(self) -> List[Dict[str, Any]]:
        """JSON schema per operation kind, for tool/agent discovery"""
        return [
            {
                "kind": kind.value,
                "schema": variant.model_json_schema(by_alias=True),
            }
            for kind, variant in self._variants.items()
        ]


default_catalog = OperationCatalog()
