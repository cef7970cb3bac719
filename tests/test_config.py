import json
from pathlib import Path

import pytest

from relcrawl.config import NetworkConfiguration, load_configuration, storage_root_from_env
from relcrawl.models import CrawlLevel, RelationDirection, ValidationError
from relcrawl.security import encrypt_secret, generate_secret_key


def _config(**overrides) -> dict:
    config = {
        "seed_key": "alice",
        "directions": ["outgoing", "incoming"],
        "level": "1.5",
        "include_extra_attribute": True,
        "max_items_per_direction": 50,
        "http_timeout_ms": 5000,
        "http_retries": 2,
        "api": {
            "related": {
                "outgoing": "https://api.example.test/users/{key}/following",
                "incoming": "https://api.example.test/users/{key}/followers",
            },
            "attributes": "https://api.example.test/users/{key}",
            "item_path": "users",
            "key_field": "screen_name",
        },
        "output": {"folder": "out", "formats": ["graphml", "json"]},
    }
    config.update(overrides)
    return config


def test_load_configuration_from_file(tmp_path: Path) -> None:
    path = tmp_path / "network.json"
    path.write_text(json.dumps(_config()), encoding="utf-8")

    configuration = load_configuration(path)

    spec = configuration.spec
    assert spec.seed_key == "alice"
    assert spec.level is CrawlLevel.ONE_POINT_FIVE
    assert spec.directions == {RelationDirection.OUTGOING, RelationDirection.INCOMING}
    assert spec.max_items_per_direction == 50
    assert spec.http_retries == 2
    assert configuration.api.key_field == "screen_name"
    assert configuration.output.folder == Path("out")
    assert configuration.output.formats == ["graphml", "json"]


def test_errors_from_every_section_are_collected() -> None:
    raw = _config(seed_key="", level="three", api={"related": {}}, output={"formats": ["csv"]})

    with pytest.raises(ValidationError) as excinfo:
        NetworkConfiguration.from_dict(raw)

    assert set(excinfo.value.errors) >= {"seed_key", "level", "api.related", "output.formats"}


def test_malformed_output_section_alone_is_rejected() -> None:
    with pytest.raises(ValidationError) as excinfo:
        NetworkConfiguration.from_dict(_config(output="out"))
    assert excinfo.value.errors == {"output": "output must be an object"}


def test_credentials_must_be_given_together() -> None:
    with pytest.raises(ValidationError) as excinfo:
        NetworkConfiguration.from_dict(_config(credentials={"user": "alice"}))
    assert "credentials" in excinfo.value.errors


def test_every_direction_needs_a_url_template() -> None:
    api = _config()["api"]
    api["related"].pop("incoming")
    with pytest.raises(ValidationError) as excinfo:
        NetworkConfiguration.from_dict(_config(api=api))
    assert "incoming" in excinfo.value.errors["api.related"]


def test_encrypted_secret_is_decrypted_with_env_key(monkeypatch: pytest.MonkeyPatch) -> None:
    key = generate_secret_key()
    monkeypatch.setenv("RELCRAWL_SECRET_KEY", key)
    token = encrypt_secret("hunter2", key)

    configuration = NetworkConfiguration.from_dict(
        _config(credentials={"user": "alice", "secret_encrypted": token})
    )

    assert configuration.spec.credentials is not None
    assert configuration.spec.credentials.secret == "hunter2"
    assert "hunter2" not in repr(configuration.spec.credentials)


def test_encrypted_secret_without_key_is_a_validation_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("RELCRAWL_SECRET_KEY", raising=False)
    token = encrypt_secret("hunter2", generate_secret_key())

    with pytest.raises(ValidationError) as excinfo:
        NetworkConfiguration.from_dict(_config(credentials={"user": "alice", "secret_encrypted": token}))

    assert "credentials.secret_encrypted" in excinfo.value.errors


def test_missing_and_malformed_files(tmp_path: Path) -> None:
    with pytest.raises(ValidationError) as missing:
        load_configuration(tmp_path / "absent.json")
    assert "not found" in missing.value.errors["config"]

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValidationError) as malformed:
        load_configuration(broken)
    assert "invalid JSON" in malformed.value.errors["config"]


def test_storage_root_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("RELCRAWL_STORAGE_ROOT", str(tmp_path))
    assert storage_root_from_env() == tmp_path
