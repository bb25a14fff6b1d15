import logging

import pytest
from sqlalchemy import text

from pscore.services.exceptions import PersistenceCorrupt
from pscore.services.storage import HAS_POSTED, KeyValueStore, USERNAME


def test_missing_key_is_none(store):
    assert store.get_item(USERNAME) is None
    assert store.get_json(HAS_POSTED) is None


def test_set_and_overwrite(store):
    store.set_item(USERNAME, "first_user")
    store.set_item(USERNAME, "second_user")

    assert store.get_item(USERNAME) == "second_user"


def test_json_round_trip(store):
    store.set_json(HAS_POSTED, True)

    assert store.get_item(HAS_POSTED) == "true"
    assert store.get_json(HAS_POSTED) is True


def test_profiles_are_isolated(store, session_factory):
    other = KeyValueStore("other-profile", session_factory)
    store.set_item(USERNAME, "valid_user1")

    assert other.get_item(USERNAME) is None


def test_corrupt_json_raises(store):
    store.set_item(HAS_POSTED, "{not json")

    with pytest.raises(PersistenceCorrupt) as excinfo:
        store.get_json(HAS_POSTED)
    assert excinfo.value.key == HAS_POSTED


def test_write_failure_is_logged_not_raised(store, session_factory, caplog):
    with session_factory() as db:
        db.execute(text("DROP TABLE stored_values"))
        db.commit()

    with caplog.at_level(logging.ERROR, logger="pscore.storage"):
        store.set_item(USERNAME, "valid_user1")

    assert "Failed to persist username" in caplog.text
