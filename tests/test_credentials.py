"""
Credential store: completeness, atomic token rotation, durability.
"""

import json

import pytest

from geotag_core.credentials import CredentialStore
from geotag_core.errors import MissingCredentials
from geotag_core.models import Credentials


def test_missing_file_reports_missing(store):
    assert store.load() is None


def test_save_then_load_survives_a_new_instance(store, credentials):
    store.save(credentials)

    reopened = CredentialStore(store.path)
    assert reopened.load() == credentials


def test_file_uses_wire_names(store, credentials):
    store.save(credentials)
    data = json.loads(store.path.read_text())
    assert data == {
        "apiKey": "sk_test_key",
        "authToken": "token-1",
        "refreshToken": "refresh-1",
        "customerID": "cust-42",
    }


@pytest.mark.parametrize("missing", ["apiKey", "authToken", "refreshToken", "customerID"])
def test_incomplete_record_is_missing(store, credentials, missing):
    data = credentials.to_dict()
    data[missing] = ""
    store.path.write_text(json.dumps(data))
    assert store.load() is None


def test_corrupt_file_is_missing(store):
    store.path.write_text("{not json")
    assert store.load() is None


def test_update_tokens_only_touches_tokens(saved_store):
    updated = saved_store.update_tokens("token-2", "refresh-2")

    assert updated.auth_token == "token-2"
    assert updated.refresh_token == "refresh-2"
    assert updated.api_key == "sk_test_key"
    assert updated.customer_id == "cust-42"
    assert saved_store.load() == updated
    assert not saved_store.path.with_name(saved_store.path.name + ".tmp").exists()


def test_update_tokens_without_credentials_raises(store):
    with pytest.raises(MissingCredentials):
        store.update_tokens("token-2", "refresh-2")


def test_clear(saved_store):
    saved_store.clear()
    assert saved_store.load() is None
    saved_store.clear()


def test_repr_hides_secrets(credentials):
    text = repr(credentials)
    assert "cust-42" in text
    assert "token-1" not in text
    assert "sk_test_key" not in text


def test_from_dict_rejects_non_dict():
    assert Credentials.from_dict(["apiKey"]) is None
