#!/usr/bin/env python3
# -*- coding: utf-8 -*-
import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Mapping, Optional

import yaml

LOG_FORMAT = '[%(asctime).19s] [%(name)s] [%(levelname)s] %(message)s'

ENVIRONMENTS = ('development', 'staging', 'production')


def configure_logger(logger,
                     log_file=None,
                     log_format=LOG_FORMAT,
                     log_level=logging.INFO):
    """Configure a logger with a file or stream handler

    Args:
        logger: Logger instance or logger name string
        log_file: File path string or file-like object (None for stderr)
        log_format: Format string for log messages
        log_level: Logging level (e.g., logging.INFO, logging.DEBUG)

    Returns:
        Configured logger instance
    """
    if isinstance(log_file, str):
        handler = logging.FileHandler(
            log_file,
            mode='a',
            encoding='utf-8',
            errors='replace'
        )
    else:
        handler = logging.StreamHandler(log_file)

    handler.setFormatter(logging.Formatter(log_format))

    if isinstance(logger, str):
        logger = logging.getLogger(logger)

    logger.addHandler(handler)
    logger.setLevel(log_level)

    return logger


@dataclass
class MigrationConfig:
    """
    Settings for a migration run.

    Attributes:
        database_url: SQLAlchemy URL, Postgres URL or SQLite file path
        log_level: Logging level name (debug, info, warning, error)
        log_file: Optional log file (stderr when None)
        schema_dir: Directory holding schema.sql and other prerequisite files
        environment: development, staging or production
        allow_reset: Permit history reset in production
    """
    database_url: Optional[str] = None
    log_level: str = 'info'
    log_file: Optional[str] = None
    schema_dir: str = 'db'
    environment: str = 'development'
    allow_reset: bool = False

    def __post_init__(self):
        self.environment = str(self.environment).lower()
        if self.environment not in ENVIRONMENTS:
            raise ValueError(
                f"environment must be one of {ENVIRONMENTS}, got '{self.environment}'"
            )
        if not isinstance(getattr(logging, str(self.log_level).upper(), None), int):
            raise ValueError(f"Unknown log level '{self.log_level}'")

    @property
    def level(self) -> int:
        return getattr(logging, self.log_level.upper())

    @property
    def reset_allowed(self) -> bool:
        return self.environment != 'production' or self.allow_reset


def _read_config_file(config_file: str) -> dict:
    """Load a JSON or YAML (by extension) configuration file."""
    with open(config_file, 'r', encoding='utf-8') as fp:
        if config_file.endswith(('.yaml', '.yml')):
            conf = yaml.safe_load(fp) or {}
        else:
            conf = json.load(fp)

    if not isinstance(conf, dict):
        raise ValueError(f"Config file {config_file} must contain a mapping")

    # Accept either a flat file or a 'migrations' section
    return conf.get('migrations', conf)


def load_config(config_file: Optional[str] = None,
                env: Optional[Mapping[str, str]] = None) -> MigrationConfig:
    """Load configuration from an optional JSON/YAML file plus environment

    Environment variables win over file values:
        DATABASE_URL, SCHEMAFLOW_LOG_LEVEL, SCHEMAFLOW_LOG_FILE,
        SCHEMAFLOW_SCHEMA_DIR, SCHEMAFLOW_ENV

    Args:
        config_file: Path to .json, .yaml or .yml file (optional)
        env: Environment mapping (defaults to os.environ)

    Returns:
        MigrationConfig

    Raises:
        FileNotFoundError: If config_file does not exist
        ValueError: On invalid values
    """
    env = os.environ if env is None else env

    conf = _read_config_file(config_file) if config_file else {}
    known = {f.name for f in fields(MigrationConfig)}
    values = {key: value for key, value in conf.items() if key in known}

    overrides = {
        'database_url': env.get('DATABASE_URL'),
        'log_level': env.get('SCHEMAFLOW_LOG_LEVEL'),
        'log_file': env.get('SCHEMAFLOW_LOG_FILE'),
        'schema_dir': env.get('SCHEMAFLOW_SCHEMA_DIR'),
        'environment': env.get('SCHEMAFLOW_ENV'),
    }
    values.update({key: value for key, value in overrides.items() if value})

    # A relative schema_dir in a config file is relative to that file
    if (config_file and 'schema_dir' in conf and not overrides['schema_dir']
            and not Path(conf['schema_dir']).is_absolute()):
        values['schema_dir'] = str(Path(config_file).parent / conf['schema_dir'])

    return MigrationConfig(**values)
