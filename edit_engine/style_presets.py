"""
================================================================================
EDIT ENGINE - Style Presets
================================================================================
Named looks expanded into fixed, ordered operation lists.

  cinematic     brightness +10, cinematic grade
  vintage       vintage grade, brightness +5
  modern        saturation 1.3, light sharpen
  social-media  9:16 crop, saturation 1.2, loudness normalisation
  professional  stabilise, brightness +5, loudness normalisation
================================================================================
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from .errors import UnsupportedOperation
from .operation_catalog import OperationDescriptor, OperationKind

logger = logging.getLogger("mediaedit.styles")


@dataclass(frozen=True)
class StylePreset:
    id: str
    name: str
    description: str
    ordered_operations: Tuple[Tuple[OperationKind, Tuple[Tuple[str, Any], ...]], ...]

    def descriptors(self) -> List[OperationDescriptor]:
        return [
            OperationDescriptor(kind=kind, parameters=dict(params), order=index + 1)
            for index, (kind, params) in enumerate(self.ordered_operations)
        ]


STYLE_PRESETS: Dict[str, StylePreset] = {
    preset.id: preset
    for preset in (
        StylePreset(
            id="cinematic",
            name="Cinematic",
            description="Film-like contrast curve with a slight lift",
            ordered_operations=(
                (OperationKind.ADJUST_BRIGHTNESS, (("brightness", 10),)),
                (OperationKind.APPLY_FILTER, (("filter", "cinematic"),)),
            ),
        ),
        StylePreset(
            id="vintage",
            name="Vintage",
            description="Warm, faded sepia look",
            ordered_operations=(
                (OperationKind.APPLY_FILTER, (("filter", "vintage"),)),
                (OperationKind.ADJUST_BRIGHTNESS, (("brightness", 5),)),
            ),
        ),
        StylePreset(
            id="modern",
            name="Modern",
            description="Vivid colour with crisp detail",
            ordered_operations=(
                (OperationKind.ENHANCE_COLORS, (("saturation", 1.3),)),
                (OperationKind.APPLY_FILTER, (("filter", "sharpen"), ("intensity", 0.5))),
            ),
        ),
        StylePreset(
            id="social-media",
            name="Social Media",
            description="Vertical 9:16 framing, punchy colour, even loudness",
            ordered_operations=(
                (OperationKind.CROP_TO_ASPECT_RATIO, (("ratio", "9:16"),)),
                (OperationKind.ENHANCE_COLORS, (("saturation", 1.2),)),
                (OperationKind.NORMALIZE_AUDIO, ()),
            ),
        ),
        StylePreset(
            id="professional",
            name="Professional",
            description="Steadied footage, gentle lift, broadcast loudness",
            ordered_operations=(
                (OperationKind.STABILIZE, ()),
                (OperationKind.ADJUST_BRIGHTNESS, (("brightness", 5),)),
                (OperationKind.NORMALIZE_AUDIO, ()),
            ),
        ),
    )
}


class StylePresetExpander:
    def __init__(self, presets: Dict[str, StylePreset] = STYLE_PRESETS):
        self.presets = presets

    def expand(self, style_id: str) -> List[OperationDescriptor]:
        """Fresh descriptors for a style; the catalog entries are never shared"""
        preset = self.presets.get(style_id.strip().lower())
        if preset is None:
            raise UnsupportedOperation(
                f"Unknown style: {style_id}. Available: {', '.join(self.presets)}",
                operation="applyStyle",
                field="style",
            )
        logger.debug(f"[StylePresets] {preset.id} -> {len(preset.ordered_operations)} operations")
        return preset.descriptors()

    def list_styles(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": preset.id,
                "name": preset.name,
                "description": preset.description,
                "operations": [kind.value for kind, _ in preset.ordered_operations],
            }
            for preset in self.presets.values()
        ]
