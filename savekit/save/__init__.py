"""Save protocol: events, package format, aggregation, orchestration, persistence."""

from savekit.save.errors import (
    SaveError,
    SlotNotFoundError,
    SlotOccupiedError,
    SlotWriteError,
    CorruptPackageError,
    OperationError,
)
from savekit.save.events import (
    SaveEvent,
    SaveRequest,
    SaveResponse,
    LoadDelivery,
    SaveCompleted,
    LoadCompleted,
)
from savekit.save.package import SavePackage, encode_package, decode_package
from savekit.save.aggregator import (
    ResponseAggregator,
    SaveOperation,
    OperationState,
    RegisterResult,
)
from savekit.save.persistence import SlotStore, SaveSlotInfo, generate_random_extension
from savekit.save.manager import SaveManager

__all__ = [
    'SaveError',
    'SlotNotFoundError',
    'SlotOccupiedError',
    'SlotWriteError',
    'CorruptPackageError',
    'OperationError',
    'SaveEvent',
    'SaveRequest',
    'SaveResponse',
    'LoadDelivery',
    'SaveCompleted',
    'LoadCompleted',
    'SavePackage',
    'encode_package',
    'decode_package',
    'ResponseAggregator',
    'SaveOperation',
    'OperationState',
    'RegisterResult',
    'SlotStore',
    'SaveSlotInfo',
    'generate_random_extension',
    'SaveManager',
]
