"""Value codec: typed arrays to (optionally ciphered) string arrays."""

from savecore.codec.values import (
    BlockKind,
    Vector2,
    Color,
    COMPOSITE_DELIMITER,
    get_format,
)
from savecore.codec.array_blocks import ArrayBlock, ArrayBlockCodec, DecodedBlock

__all__ = [
    'BlockKind',
    'Vector2',
    'Color',
    'COMPOSITE_DELIMITER',
    'get_format',
    'ArrayBlock',
    'ArrayBlockCodec',
    'DecodedBlock',
]
