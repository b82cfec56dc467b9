"""Tests for configuration loading module."""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from s3proto.config import (
    ClientConfig,
    ConfigError,
    has_env_config,
    load_config,
    load_from_env,
    load_from_json,
)


class TestLoadFromJson:
    """Tests for load_from_json function."""

    def test_valid_config_with_all_fields(self, tmp_path: Path):
        """Load a valid config file with all fields specified."""
        config_data = {
            "endpoint_url": "https://play.min.io",
            "access_key": "test-key",
            "secret_key": "test-secret",
            "session_token": "token",
            "region": "eu-central-1",
            "max_retries": 3,
            "retry_median_delay": 0.5,
            "timeout": 10,
        }
        config_file = tmp_path / "s3proto.json"
        config_file.write_text(json.dumps(config_data))

        config = load_from_json(str(config_file))

        assert config == ClientConfig(
            endpoint_url="https://play.min.io",
            access_key="test-key",
            secret_key="test-secret",
            session_token="token",
            region="eu-central-1",
            max_retries=3,
            retry_median_delay=0.5,
            timeout=10.0,
        )

    def test_defaults_applied(self, tmp_path: Path):
        """Optional fields fall back to their defaults."""
        config_file = tmp_path / "s3proto.json"
        config_file.write_text(json.dumps({
            "endpoint_url": "http://localhost:9000",
            "access_key": "minioadmin",
            "secret_key": "minioadmin",
        }))

        config = load_from_json(str(config_file))

        assert config.region == "us-east-1"
        assert config.session_token is None
        assert config.max_retries == 5
        assert config.timeout == 60.0

    def test_missing_file_raises_error(self, tmp_path: Path):
        """Raise ConfigError when config file doesn't exist."""
        config_file = tmp_path / "nonexistent.json"

        with pytest.raises(ConfigError, match="Config file not found"):
            load_from_json(str(config_file))

    def test_malformed_json_raises_error(self, tmp_path: Path):
        """Raise ConfigError when config file contains invalid JSON."""
        config_file = tmp_path / "s3proto.json"
        config_file.write_text("{ invalid json }")

        with pytest.raises(ConfigError, match="Invalid JSON"):
            load_from_json(str(config_file))

    def test_non_object_raises_error(self, tmp_path: Path):
        """Raise ConfigError when the file holds something other than an object."""
        config_file = tmp_path / "s3proto.json"
        config_file.write_text("[]")

        with pytest.raises(ConfigError, match="JSON object"):
            load_from_json(str(config_file))

    def test_missing_required_field_raises_error(self, tmp_path: Path):
        """Raise ConfigError when required field is missing."""
        config_file = tmp_path / "s3proto.json"
        config_file.write_text(json.dumps({"endpoint_url": "http://localhost:9000", "access_key": "key"}))

        with pytest.raises(ConfigError, match="Missing required field 'secret_key'"):
            load_from_json(str(config_file))

    def test_invalid_number_raises_error(self, tmp_path: Path):
        """Raise ConfigError when a numeric field is not a number."""
        config_file = tmp_path / "s3proto.json"
        config_file.write_text(json.dumps({
            "endpoint_url": "http://localhost:9000",
            "access_key": "key",
            "secret_key": "secret",
            "max_retries": "many",
        }))

        with pytest.raises(ConfigError, match="max_retries"):
            load_from_json(str(config_file))

    def test_negative_retries_raises_error(self, tmp_path: Path):
        """Raise ConfigError when max_retries is negative."""
        config_file = tmp_path / "s3proto.json"
        config_file.write_text(json.dumps({
            "endpoint_url": "http://localhost:9000",
            "access_key": "key",
            "secret_key": "secret",
            "max_retries": -1,
        }))

        with pytest.raises(ConfigError, match="must not be negative"):
            load_from_json(str(config_file))


class TestLoadFromEnv:
    """Tests for load_from_env function."""

    def test_valid_env_vars(self):
        """Load the configuration from S3PROTO_* variables."""
        env_vars = {
            "S3PROTO_ENDPOINT": "https://play.min.io",
            "S3PROTO_REGION": "eu-west-1",
            "S3PROTO_ACCESS_KEY": "env-key",
            "S3PROTO_SECRET_KEY": "env-secret",
            "S3PROTO_MAX_RETRIES": "2",
            "S3PROTO_TIMEOUT": "15",
        }

        with patch.dict(os.environ, env_vars, clear=True):
            config = load_from_env()

        assert config.endpoint_url == "https://play.min.io"
        assert config.region == "eu-west-1"
        assert config.access_key == "env-key"
        assert config.secret_key == "env-secret"
        assert config.max_retries == 2
        assert config.timeout == 15.0

    def test_minio_root_credentials_accepted(self):
        """MinIO root user variables serve as credentials."""
        env_vars = {
            "S3PROTO_ENDPOINT": "http://localhost:9000",
            "MINIO_ROOT_USER": "minioadmin",
            "MINIO_ROOT_PASSWORD": "minio-secret",
        }

        with patch.dict(os.environ, env_vars, clear=True):
            config = load_from_env()

        assert config.access_key == "minioadmin"
        assert config.secret_key == "minio-secret"

    def test_aws_variables_with_session_token(self):
        """AWS credential variables and session token are picked up."""
        env_vars = {
            "S3PROTO_ENDPOINT": "https://s3.amazonaws.com",
            "AWS_ACCESS_KEY_ID": "AKIA",
            "AWS_SECRET_ACCESS_KEY": "secret",
            "AWS_SESSION_TOKEN": "token",
        }

        with patch.dict(os.environ, env_vars, clear=True):
            config = load_from_env()

        assert config.session_token == "token"

    def test_own_variables_take_precedence(self):
        """S3PROTO_ACCESS_KEY wins over the AWS variable."""
        env_vars = {
            "S3PROTO_ENDPOINT": "http://localhost:9000",
            "S3PROTO_ACCESS_KEY": "own",
            "AWS_ACCESS_KEY_ID": "aws",
            "S3PROTO_SECRET_KEY": "secret",
        }

        with patch.dict(os.environ, env_vars, clear=True):
            assert load_from_env().access_key == "own"

    def test_missing_credential_env_var_raises_error(self):
        """Raise ConfigError with clear message when credential var is missing."""
        env_vars = {
            "S3PROTO_ENDPOINT": "http://localhost:9000",
            "S3PROTO_ACCESS_KEY": "key",
        }

        with patch.dict(os.environ, env_vars, clear=True):
            with pytest.raises(ConfigError, match="Missing environment variable.*S3PROTO_SECRET_KEY"):
                load_from_env()

    def test_missing_endpoint_raises_error(self):
        """Raise ConfigError when no endpoint is set."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ConfigError, match="S3PROTO_ENDPOINT"):
                load_from_env()


class TestLoadConfig:
    """Tests for load_config function."""

    def test_env_vars_take_priority(self, tmp_path: Path):
        """Environment variables take priority over the JSON file."""
        config_file = tmp_path / "s3proto.json"
        config_file.write_text(json.dumps({
            "endpoint_url": "https://json.example.com",
            "access_key": "json-key",
            "secret_key": "json-secret",
        }))
        env_vars = {
            "S3PROTO_ENDPOINT": "https://env.example.com",
            "S3PROTO_ACCESS_KEY": "env-key",
            "S3PROTO_SECRET_KEY": "env-secret",
        }

        with patch.dict(os.environ, env_vars, clear=True):
            config = load_config(config_path=str(config_file))

        assert config.endpoint_url == "https://env.example.com"

    def test_falls_back_to_json(self, tmp_path: Path):
        """Fall back to the JSON file when no endpoint variable exists."""
        config_file = tmp_path / "s3proto.json"
        config_file.write_text(json.dumps({
            "endpoint_url": "https://json.example.com",
            "access_key": "json-key",
            "secret_key": "json-secret",
        }))

        with patch.dict(os.environ, {}, clear=True):
            config = load_config(config_path=str(config_file))

        assert config.access_key == "json-key"

    def test_no_source_raises_error(self, tmp_path: Path):
        """Raise ConfigError when neither source is available."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ConfigError, match="No endpoint configured"):
                load_config(config_path=str(tmp_path / "missing.json"))

    def test_has_env_config(self):
        """has_env_config follows S3PROTO_ENDPOINT."""
        with patch.dict(os.environ, {"S3PROTO_ENDPOINT": "http://localhost:9000"}, clear=True):
            assert has_env_config() is True
        with patch.dict(os.environ, {}, clear=True):
            assert has_env_config() is False
