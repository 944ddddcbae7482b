"""Test configuration management."""

from types import SimpleNamespace
from unittest.mock import patch

import pytest

from drone.sdk.client import DroneClient
from drone.sdk.config import DroneConfig, load_dotenv_for_sdk


class TestConfiguration:
    """Test configuration loading and management."""

    def test_default_config_values(self):
        """Test default configuration values."""
        config = DroneConfig()
        assert config.server == ""
        assert config.token is None
        assert config.csrf is None

    def test_config_from_environment(self):
        """Test configuration loading from environment variables."""
        env_vars = {
            "DRONE_SERVER": "https://drone.example.com/",
            "DRONE_TOKEN": "password",
            "DRONE_CSRF": "123456",
        }

        with patch.dict("os.environ", env_vars):
            config = DroneConfig.from_environment()

        assert config.server == "https://drone.example.com/"
        assert config.token == "password"
        assert config.csrf == "123456"

    def test_missing_environment_values(self):
        """Absent variables leave the matching credential unset."""
        with patch.dict("os.environ", {"DRONE_TOKEN": ""}, clear=True):
            config = DroneConfig.from_environment()

        assert config.server == ""
        assert config.token is None
        assert config.csrf is None

    def test_config_from_mapping_context(self):
        config = DroneConfig.from_context({"DRONE_SERVER": "http://ci", "DRONE_CSRF": "abc"})
        assert config.server == "http://ci"
        assert config.token is None
        assert config.csrf == "abc"

    def test_config_from_object_context(self):
        context = SimpleNamespace(DRONE_SERVER="http://ci", DRONE_TOKEN="t")
        config = DroneConfig.from_context(context)
        assert config.token == "t"
        assert config.csrf is None

    def test_config_from_missing_context(self):
        assert DroneConfig.from_context(None) == DroneConfig()

    def test_config_immutability(self):
        """Test that config is immutable."""
        config = DroneConfig(server="http://ci")

        with pytest.raises(Exception):  # Pydantic will raise validation error
            config.server = "modified"

    def test_login_from_token_claims(self, mock_token):
        assert DroneConfig(token=mock_token).login == "octocat"

    def test_login_for_opaque_token(self):
        assert DroneConfig(token="not-a-jwt").login is None
        assert DroneConfig().login is None


class TestClientFactories:
    def test_from_environ(self):
        env_vars = {"DRONE_SERVER": "http://ci", "DRONE_TOKEN": "password"}
        with patch.dict("os.environ", env_vars, clear=True):
            client = DroneClient.from_environ()

        assert client.server == "http://ci"
        assert client.token == "password"
        assert client.csrf is None

    def test_from_context(self):
        client = DroneClient.from_context({"DRONE_TOKEN": "password", "DRONE_CSRF": "1"})
        assert client.server == ""
        assert client.token == "password"
        assert client.csrf == "1"


class TestDotenv:
    def test_load_dotenv_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("DRONE_SERVER=http://from-dotenv\n")

        with patch.dict("os.environ", {}, clear=True):
            load_dotenv_for_sdk(env_file)
            assert DroneConfig.from_environment().server == "http://from-dotenv"

    def test_missing_dotenv_file_is_ignored(self, tmp_path):
        with patch.dict("os.environ", {}, clear=True):
            load_dotenv_for_sdk(tmp_path / "missing.env")
            assert DroneConfig.from_environment() == DroneConfig()
