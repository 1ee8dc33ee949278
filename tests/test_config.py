# tests/test_config.py
"""Tests for configuration loading."""

import pytest
import yaml

from bzzdb.config import BzzConfig, load_config
from bzzdb.signing import Signer


@pytest.fixture
def write_config(tmp_path):
    def write(data):
        path = tmp_path / "bzzdb.yaml"
        path.write_text(yaml.safe_dump(data))
        return path
    return write


class TestLoadConfig:
    def test_defaults(self):
        config = load_config(env={})
        assert config == BzzConfig()
        assert config.node_url == "http://localhost"
        assert (config.api_port, config.debug_api_port) == (1633, 1635)

    def test_from_file(self, write_config):
        path = write_config({"node_url": "http://bee:80", "api_port": 8080, "ticket_depth": 20})
        config = load_config(path, env={})
        assert config.node_url == "http://bee:80"
        assert config.api_port == 8080
        assert config.ticket_depth == 20
        assert config.debug_api_port == 1635

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path, env={}) == BzzConfig()

    def test_env_overrides_file(self, write_config):
        path = write_config({"node_url": "http://file", "private_key": "11" * 32})
        config = load_config(path, env={"NODE_ADDRESS": "http://env", "PRIVATE_KEY": "22" * 32})
        assert config.node_url == "http://env"
        assert config.private_key == "22" * 32

    def test_empty_env_ignored(self, write_config):
        path = write_config({"node_url": "http://file"})
        config = load_config(path, env={"NODE_ADDRESS": ""})
        assert config.node_url == "http://file"

    def test_unknown_key(self, write_config):
        with pytest.raises(ValueError, match="unknown config keys"):
            load_config(write_config({"node_url": "http://x", "colour": "blue"}), env={})

    def test_not_a_mapping(self, write_config):
        with pytest.raises(ValueError):
            load_config(write_config(["a", "b"]), env={})

    @pytest.mark.parametrize(
        "data",
        [
            {"api_port": 0},
            {"debug_api_port": 70000},
            {"timeout": 0},
            {"ticket_amount": 0},
            {"ticket_depth": 16},
            {"ticket_depth": 256},
            {"max_workers": 0},
        ],
    )
    def test_invalid_values(self, write_config, data):
        with pytest.raises(ValueError):
            load_config(write_config(data), env={})


class TestSigner:
    def test_hex_key(self):
        key = Signer.generate().to_hex()
        config = BzzConfig(private_key=key)
        assert config.signer().to_hex() == key

    def test_key_file(self, tmp_path):
        signer = Signer.generate()
        path = signer.save(tmp_path / "key.pem")
        config = BzzConfig(private_key_file=str(path))
        assert config.signer().owner == signer.owner

    def test_hex_key_preferred(self, tmp_path):
        file_signer = Signer.generate()
        path = file_signer.save(tmp_path / "key.pem")
        hex_key = Signer.generate().to_hex()

        config = BzzConfig(private_key=hex_key, private_key_file=str(path))
        assert config.signer().to_hex() == hex_key

    def test_no_key(self):
        with pytest.raises(ValueError, match="no private key"):
            BzzConfig().signer()

    def test_dict_round_trip(self):
        config = BzzConfig(node_url="http://bee", ticket_depth=18)
        assert BzzConfig.from_dict(config.to_dict()) == config
