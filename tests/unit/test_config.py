"""
Unit tests for configuration loading and logging setup.
"""

import io
import json
import logging
from pathlib import Path

import pytest

from schemaflow.config import MigrationConfig, configure_logger, load_config


class TestMigrationConfig:
    """Test MigrationConfig validation."""

    def test_defaults(self):
        config = MigrationConfig()

        assert config.database_url is None
        assert config.schema_dir == 'db'
        assert config.environment == 'development'
        assert config.level == logging.INFO

    def test_environment_normalized(self):
        assert MigrationConfig(environment='Staging').environment == 'staging'

    def test_unknown_environment_rejected(self):
        with pytest.raises(ValueError, match="environment must be one of"):
            MigrationConfig(environment='qa')

    def test_unknown_log_level_rejected(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            MigrationConfig(log_level='loud')

    @pytest.mark.parametrize('environment,allow_reset,expected', [
        ('development', False, True),
        ('staging', False, True),
        ('production', False, False),
        ('production', True, True),
    ])
    def test_reset_allowed(self, environment, allow_reset, expected):
        config = MigrationConfig(environment=environment, allow_reset=allow_reset)
        assert config.reset_allowed is expected


class TestLoadConfig:
    """Test load_config() sources and precedence."""

    def test_empty_environment(self):
        config = load_config(env={})
        assert config == MigrationConfig()

    def test_environment_variables(self):
        config = load_config(env={
            'DATABASE_URL': 'postgres://tracker@db/tracker',
            'SCHEMAFLOW_LOG_LEVEL': 'debug',
            'SCHEMAFLOW_LOG_FILE': 'migrate.log',
            'SCHEMAFLOW_SCHEMA_DIR': '/srv/db',
            'SCHEMAFLOW_ENV': 'production',
        })

        assert config.database_url == 'postgres://tracker@db/tracker'
        assert config.level == logging.DEBUG
        assert config.log_file == 'migrate.log'
        assert config.schema_dir == '/srv/db'
        assert config.environment == 'production'

    def test_json_file(self, tmp_path):
        config_file = tmp_path / 'migrate.json'
        config_file.write_text(json.dumps({
            'database_url': 'sqlite+aiosqlite:///tracker.db',
            'log_level': 'warning',
            'unrelated': True,
        }))

        config = load_config(str(config_file), env={})

        assert config.database_url == 'sqlite+aiosqlite:///tracker.db'
        assert config.level == logging.WARNING

    def test_yaml_file_with_section(self, tmp_path):
        config_file = tmp_path / 'app.yaml'
        config_file.write_text(
            "migrations:\n"
            "  database_url: postgres://tracker@db/tracker\n"
            "  environment: staging\n"
            "  allow_reset: true\n"
        )

        config = load_config(str(config_file), env={})

        assert config.database_url == 'postgres://tracker@db/tracker'
        assert config.environment == 'staging'
        assert config.allow_reset is True

    def test_environment_overrides_file(self, tmp_path):
        config_file = tmp_path / 'migrate.yml'
        config_file.write_text("database_url: postgres://file@db/tracker\n")

        config = load_config(str(config_file), env={'DATABASE_URL': 'postgres://env@db/tracker'})

        assert config.database_url == 'postgres://env@db/tracker'

    def test_relative_schema_dir_resolved_against_file(self, tmp_path):
        config_file = tmp_path / 'config' / 'migrate.yaml'
        config_file.parent.mkdir()
        config_file.write_text("schema_dir: ../db\n")

        config = load_config(str(config_file), env={})

        assert Path(config.schema_dir) == tmp_path / 'config' / '..' / 'db'

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / 'missing.json'), env={})

    def test_non_mapping_file(self, tmp_path):
        config_file = tmp_path / 'migrate.yaml'
        config_file.write_text("- one\n- two\n")

        with pytest.raises(ValueError, match="must contain a mapping"):
            load_config(str(config_file), env={})


class TestConfigureLogger:
    """Test logger configuration."""

    def test_stream_handler_format(self):
        stream = io.StringIO()
        logger = configure_logger('schemaflow.tests.config', log_file=stream,
                                  log_level=logging.DEBUG)
        try:
            logger.debug('Resolved %d migrations', 3)
            output = stream.getvalue()
        finally:
            logger.handlers.clear()

        assert '[schemaflow.tests.config] [DEBUG] Resolved 3 migrations' in output
        assert output.startswith('[')

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / 'migrate.log'
        logger = configure_logger(logging.getLogger('schemaflow.tests.file'),
                                  log_file=str(log_file))
        try:
            logger.info('Migration run COMPLETED')
        finally:
            for handler in logger.handlers:
                handler.close()
            logger.handlers.clear()

        assert '[INFO] Migration run COMPLETED' in log_file.read_text(encoding='utf-8')


    def test_file_handler_appends_utf8(self, tmp_path):
        log_file = tmp_path / 'migrate.log'
        log_file.write_text('previous run\n', encoding='utf-8')
        logger = configure_logger('schemaflow.tests.append', log_file=str(log_file))
        try:
            assert [type(h) for h in logger.handlers] == [logging.FileHandler]
            logger.warning('Migration fix-supplier-names ⚠️ skipped')
        finally:
            for handler in logger.handlers:
                handler.close()
            logger.handlers.clear()

        content = log_file.read_text(encoding='utf-8')
        assert content.startswith('previous run\n')
        assert '[WARNING] Migration fix-supplier-names ⚠️ skipped' in content
