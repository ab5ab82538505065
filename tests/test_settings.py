import json

import pytest

from lanchat.settings import Endpoint, load_endpoint


def test_defaults_without_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert load_endpoint("0.0.0.0", 8080) == Endpoint("0.0.0.0", 8080)


def test_address_format():
    assert Endpoint("127.0.0.1", 8080).address() == "127.0.0.1:8080"


def test_default_config_name_in_cwd(tmp_path, monkeypatch):
    (tmp_path / "Config.toml").write_text('host = "10.0.0.5"\nport = 9000\n')
    monkeypatch.chdir(tmp_path)
    assert load_endpoint("0.0.0.0", 8080) == Endpoint("10.0.0.5", 9000)


def test_partial_override_keeps_default(tmp_path):
    (tmp_path / "Config.toml").write_text("port = 9001\n")
    endpoint = load_endpoint("127.0.0.1", 8080, tmp_path / "Config")
    assert endpoint == Endpoint("127.0.0.1", 9001)


def test_json_file(tmp_path):
    (tmp_path / "Config.json").write_text(json.dumps({"host": "localhost"}))
    endpoint = load_endpoint("127.0.0.1", 8080, tmp_path / "Config")
    assert endpoint == Endpoint("localhost", 8080)


def test_explicit_path_with_extension(tmp_path):
    target = tmp_path / "chat.toml"
    target.write_text("port = 7000\n")
    assert load_endpoint("127.0.0.1", 8080, target).port == 7000


def test_keys_are_case_insensitive(tmp_path):
    (tmp_path / "Config.toml").write_text("PORT = 7100\n")
    assert load_endpoint("127.0.0.1", 8080, tmp_path / "Config").port == 7100


def test_port_given_as_string(tmp_path):
    (tmp_path / "Config.toml").write_text('port = "7200"\n')
    assert load_endpoint("127.0.0.1", 8080, tmp_path / "Config").port == 7200


@pytest.mark.parametrize("port", ["70000", "-1", "true", '"abc"'])
def test_invalid_port_raises(tmp_path, port):
    (tmp_path / "Config.toml").write_text(f"port = {port}\n")
    with pytest.raises(ValueError):
        load_endpoint("127.0.0.1", 8080, tmp_path / "Config")


def test_invalid_host_raises(tmp_path):
    (tmp_path / "Config.toml").write_text("host = 5\n")
    with pytest.raises(ValueError):
        load_endpoint("127.0.0.1", 8080, tmp_path / "Config")


def test_malformed_toml_raises(tmp_path):
    (tmp_path / "Config.toml").write_text("port = = 1\n")
    with pytest.raises(ValueError):
        load_endpoint("127.0.0.1", 8080, tmp_path / "Config")


def test_json_must_be_object(tmp_path):
    (tmp_path / "Config.json").write_text("[1, 2]")
    with pytest.raises(ValueError):
        load_endpoint("127.0.0.1", 8080, tmp_path / "Config")