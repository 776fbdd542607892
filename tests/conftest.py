import os
import sys
import pytest

# Ensure savecore/savekit can be imported without installing
sys.path.append(os.getcwd())


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Keep host SLOTKEEPER_* variables out of tests."""
    for name in list(os.environ):
        if name.startswith("SLOTKEEPER_"):
            monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def event_bus():
    """Fresh EventBus for each test."""
    from savecore.core.events import EventBus
    return EventBus()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config(tmp_path):
    """Config writing to a temp directory."""
    from savecore.config import SaveSystemConfig, FileLocation
    return SaveSystemConfig(
        file_location=FileLocation.CUSTOM,
        custom_file_path=str(tmp_path / "saves"),
        save_timeout=5.0,
    )


@pytest.fixture
def encrypted_config(tmp_path):
    from savecore.config import SaveSystemConfig, FileLocation
    return SaveSystemConfig(
        file_location=FileLocation.CUSTOM,
        custom_file_path=str(tmp_path / "saves"),
        encrypt_data=True,
        encryption_key="k3yforsavetests",
    )


@pytest.fixture
def context(config, event_bus, clock):
    """Isolated save context on a temp directory with a fake clock."""
    from savekit.context import SaveContext
    return SaveContext.create(config, event_bus=event_bus, clock=clock)


@pytest.fixture
def recorder(event_bus):
    """Records every save protocol event by type."""
    from savekit.save.events import SaveEvent

    class Recorder:
        def __init__(self):
            self.events = {kind: [] for kind in SaveEvent}

        def handle(self, event):
            self.events[event.type].append(event)

        def __getitem__(self, kind):
            return self.events[kind]

    rec = Recorder()
    for kind in SaveEvent:
        event_bus.subscribe(kind, rec.handle, priority=-100, weak=False)
    return rec
