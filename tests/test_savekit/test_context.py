import pytest
from savecore.config import ConfigError, FileLocation, SaveSystemConfig
from savekit.context import SaveContext
from savekit.save.events import SaveCompleted, SaveEvent
from savekit.systems import GameProgress, InventorySaveHandler, ProgressSaveHandler


def test_create_defaults(tmp_path):
    config = SaveSystemConfig(file_location=FileLocation.CUSTOM, custom_file_path=str(tmp_path))
    context = SaveContext.create(config)

    assert context.cipher is None
    assert not context.encrypt
    assert context.manager.store is context.store
    assert context.handlers == []

def test_encryption_requires_key(tmp_path):
    config = SaveSystemConfig(
        file_location=FileLocation.CUSTOM,
        custom_file_path=str(tmp_path),
        encrypt_data=True,
    )
    with pytest.raises(ConfigError):
        SaveContext.create(config)

def test_encryption_key_from_key_file(tmp_path):
    config = SaveSystemConfig(
        file_location=FileLocation.CUSTOM,
        custom_file_path=str(tmp_path),
        encrypt_data=True,
        key_file=str(tmp_path / "save.key"),
    )
    context = SaveContext.create(config)

    assert context.encrypt
    assert (tmp_path / "save.key").exists()

def test_contexts_are_isolated(tmp_path):
    first = SaveContext.create(SaveSystemConfig(
        file_location=FileLocation.CUSTOM, custom_file_path=str(tmp_path / "a")))
    second = SaveContext.create(SaveSystemConfig(
        file_location=FileLocation.CUSTOM, custom_file_path=str(tmp_path / "b")))

    ProgressSaveHandler(first)

    assert first.event_bus is not second.event_bus
    assert first.manager.participants == ["GameProgress"]
    assert second.manager.participants == []

def test_handler_registration(context):
    handler = ProgressSaveHandler(context)

    assert handler.attached
    assert context.handlers == [handler]
    assert context.manager.participants == ["GameProgress"]

    handler.detach()

    assert not handler.attached
    assert context.handlers == []
    assert context.manager.participants == []
    assert not context.event_bus.has_subscribers(SaveEvent.SAVE_REQUESTED)

def test_reset_scene_keeps_manager(context):
    manager = context.manager
    progress = ProgressSaveHandler(context, persistent=True)
    inventory = InventorySaveHandler(context)

    assert context.reset_scene() is manager

    assert progress.attached
    assert not inventory.attached
    assert manager.participants == ["GameProgress"]

def test_reset_scene_replaces_manager(tmp_path, event_bus, clock, recorder):
    config = SaveSystemConfig(
        file_location=FileLocation.CUSTOM,
        custom_file_path=str(tmp_path),
        dont_destroy_on_load=False,
    )
    context = SaveContext.create(config, event_bus=event_bus, clock=clock)
    old_manager = context.manager
    progress = ProgressSaveHandler(context, persistent=True)
    InventorySaveHandler(context)
    old_manager.register_participant("Quests")
    old_manager.start_save(2)

    new_manager = context.reset_scene()

    assert new_manager is not old_manager
    assert context.manager is new_manager
    assert new_manager.participants == ["GameProgress"]
    cancelled = SaveCompleted.from_event(recorder[SaveEvent.SAVE_COMPLETED][-1])
    assert not cancelled.success

    progress.progress.set_bool("bossDead", True)
    new_manager.start_save(2)

    result = SaveCompleted.from_event(recorder[SaveEvent.SAVE_COMPLETED][-1])
    assert result.success
    assert result.systems_saved == 1

def test_progress_survives_save_and_load(context):
    progress = GameProgress()
    ProgressSaveHandler(context, progress)
    progress.set_bool("seenIntro", True)
    progress.set_int("A", 1)

    context.manager.start_save(2)
    progress.reset_all()
    context.manager.start_load(2)

    assert progress.get_bool("seenIntro")
    assert progress.get_int("A") == 1

def test_encrypted_progress_not_readable_after_disabling_encryption(encrypted_config, tmp_path):
    context = SaveContext.create(encrypted_config)
    progress = GameProgress()
    ProgressSaveHandler(context, progress)
    progress.set_bool("seenIntro", True)
    progress.set_string("hero", "Ayla")
    context.manager.start_save(2)

    plain_config = encrypted_config.model_copy(update={"encrypt_data": False})
    reopened = SaveContext.create(plain_config)
    restored = GameProgress()
    restored.set_bool("stale", True)
    handler = ProgressSaveHandler(reopened, restored)

    reopened.manager.start_load(2)

    assert handler.last_loaded_slot == 2
    assert not restored.get_bool("seenIntro")
    assert restored.get_string("hero") == ""
    assert restored.total_value_count() == 0
