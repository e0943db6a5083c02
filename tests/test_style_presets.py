"""
Style preset expansion.
"""

import pytest

from edit_engine.errors import UnsupportedOperation
from edit_engine.operation_catalog import OperationCatalog, OperationKind
from edit_engine.style_presets import STYLE_PRESETS, StylePresetExpander

expander = StylePresetExpander()


class TestStylePresets:

    def test_catalog_ids(self):
        assert set(STYLE_PRESETS) == {"cinematic", "vintage", "modern", "social-media", "professional"}

    def test_cinematic_is_brightness_then_grade(self):
        ops = expander.expand("cinematic")
        assert [op.kind for op in ops] == [OperationKind.ADJUST_BRIGHTNESS, OperationKind.APPLY_FILTER]
        assert ops[0].parameters == {"brightness": 10}
        assert ops[1].parameters == {"filter": "cinematic"}
        assert [op.order for op in ops] == [1, 2]

    def test_vintage_is_grade_then_brightness(self):
        ops = expander.expand("vintage")
        assert [op.kind for op in ops] == [OperationKind.APPLY_FILTER, OperationKind.ADJUST_BRIGHTNESS]
        assert ops[1].parameters == {"brightness": 5}

    def test_social_media(self):
        ops = expander.expand("social-media")
        assert [op.kind for op in ops] == [
            OperationKind.CROP_TO_ASPECT_RATIO,
            OperationKind.ENHANCE_COLORS,
            OperationKind.NORMALIZE_AUDIO,
        ]
        assert ops[0].parameters == {"ratio": "9:16"}

    def test_expansion_returns_fresh_copies(self):
        first = expander.expand("modern")
        first[0].parameters["saturation"] = 9.9
        assert expander.expand("modern")[0].parameters == {"saturation": 1.3}

    def test_every_preset_validates(self):
        catalog = OperationCatalog()
        for style_id in STYLE_PRESETS:
            catalog.validate_all(expander.expand(style_id))

    def test_unknown_style(self):
        with pytest.raises(UnsupportedOperation) as exc:
            expander.expand("noir")
        assert "cinematic" in exc.value.message

    def test_list_styles(self):
        listed = {style["id"]: style for style in expander.list_styles()}
        assert listed["professional"]["operations"] == ["stabilizeVideo", "adjustBrightness", "normalizeAudio"]
