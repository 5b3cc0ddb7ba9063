import pytest

from homie_automation.lua_modules import (
    ConfigItemHash,
    LuaModuleManager,
    NewDocument,
    NewItem,
    RemoveDocument,
    RemovedItem,
    clean_module_name,
)


@pytest.mark.parametrize(
    "path, expected",
    [
        ("dir/helpers.lua", "helpers"),
        ("helpers", "helpers"),
        ("notes.txt", "notes.txt"),
        ("/", "/"),
        ("a/..", "a/.."),
    ],
)
def test_clean_module_name(path, expected):
    assert clean_module_name(path) == expected


def _loaded_manager():
    manager = LuaModuleManager()
    manager.handle_event(NewDocument(10, "/cfg/lua/helpers.lua"))
    manager.handle_event(NewItem(ConfigItemHash(10, 1), "return {}"))
    return manager


def test_new_item_is_stored_under_clean_name():
    manager = _loaded_manager()
    assert dict(manager.file_contents()) == {"helpers": "return {}"}
    assert manager.find_module("helpers") == "return {}"


def test_item_for_unknown_document_is_ignored():
    manager = LuaModuleManager()
    manager.handle_event(NewItem(ConfigItemHash(3, 1), "x = 1"))
    assert len(manager.file_contents()) == 0
    assert manager.find_module("x") is None


def test_remove_document_drops_contents():
    manager = _loaded_manager()
    manager.handle_event(RemoveDocument(10))
    assert manager.find_module("helpers") is None
    manager.handle_event(NewItem(ConfigItemHash(10, 2), "again"))
    assert len(manager.file_contents()) == 0


def test_removed_item_is_ignored():
    manager = _loaded_manager()
    manager.handle_event(RemovedItem(ConfigItemHash(10, 1)))
    assert manager.find_module("helpers") == "return {}"


def test_file_contents_is_read_only_and_live():
    manager = LuaModuleManager()
    view = manager.file_contents()
    with pytest.raises(TypeError):
        view["x"] = "y"
    manager.handle_event(NewDocument(1, "m.lua"))
    manager.handle_event(NewItem(ConfigItemHash(1, 1), "src"))
    assert view["m"] == "src"


def test_config_item_hash_str():
    item_hash = ConfigItemHash(4, 9)
    assert str(item_hash).split("-") == [str(item_hash.filename_hash), str(item_hash.item_hash)]