"""
Player settings - audio, video and control options.

Settings are saved as array blocks, one block per value kind, with the
fields of each kind in a fixed order. A field whose value cannot be
decoded keeps its current value.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from savecore.codec import ArrayBlock, BlockKind, Color, Vector2
from savekit.systems.base import SaveHandler


logger = logging.getLogger(__name__)


class Settings(BaseModel):
    """Player-facing options."""

    model_config = ConfigDict(validate_assignment=True)

    # Audio
    master_volume: float = Field(default=1.0, ge=0.0, le=1.0)
    music_volume: float = Field(default=1.0, ge=0.0, le=1.0)
    sfx_volume: float = Field(default=1.0, ge=0.0, le=1.0)

    # Video
    resolution: Vector2 = Vector2(1920.0, 1080.0)
    target_frame_rate: int = 60
    vsync: bool = True
    ui_color: Color = Color(1.0, 1.0, 1.0, 1.0)

    # Controls
    mouse_sensitivity: float = 2.0
    controller_sensitivity: float = 2.0
    invert_x_axis: bool = False
    invert_y_axis: bool = False
    vibration_intensity: float = 1.0

    # Bookkeeping
    total_playtime: timedelta = timedelta(0)
    last_applied: datetime = Field(default_factory=datetime.now)


# Field order inside each block; append only, never reorder
SETTINGS_BLOCKS: dict[BlockKind, tuple[str, ...]] = {
    BlockKind.BOOL: ('vsync', 'invert_x_axis', 'invert_y_axis'),
    BlockKind.INT: ('target_frame_rate',),
    BlockKind.DOUBLE: (
        'master_volume',
        'music_volume',
        'sfx_volume',
        'mouse_sensitivity',
        'controller_sensitivity',
        'vibration_intensity',
    ),
    BlockKind.VECTOR2: ('resolution',),
    BlockKind.COLOR: ('ui_color',),
    BlockKind.TIME_SPAN: ('total_playtime',),
    BlockKind.TIMESTAMP: ('last_applied',),
}


class SettingsSaveHandler(SaveHandler):
    """Saves and restores a Settings model."""

    system_name = "Settings"

    def __init__(self, context, settings: Optional[Settings] = None, **kwargs):
        self.settings = settings or Settings()
        super().__init__(context, **kwargs)

    def capture(self) -> str:
        codec = self.context.codec
        blocks = [
            codec.encode(
                kind,
                f"settings.{kind.value}",
                [getattr(self.settings, name) for name in names],
                self.context.encrypt,
            ).to_dict()
            for kind, names in SETTINGS_BLOCKS.items()
        ]
        return json.dumps({'blocks': blocks})

    def restore(self, blob: str) -> None:
        codec = self.context.codec
        for raw in json.loads(blob).get('blocks', []):
            block = ArrayBlock.from_dict(raw)
            names = SETTINGS_BLOCKS.get(block.kind)
            if names is None:
                continue

            decoded = codec.decode(block, self.context.encrypt)
            failed = set(decoded.failed)
            for index, name in enumerate(names):
                if index >= len(decoded.values) or index in failed:
                    logger.warning(f"Setting '{name}' not restored; keeping current value")
                    continue
                try:
                    setattr(self.settings, name, decoded.values[index])
                except ValidationError as e:
                    logger.warning(
                        f"Setting '{name}' has invalid saved value {decoded.values[index]!r}; "
                        f"keeping current value ({e.error_count()} errors)"
                    )
