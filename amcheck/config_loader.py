#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Configuration Loading Utility for amcheck.

Loads a run configuration from YAML and validates it against
`amcheck.schema.AMCheckConfig`.
"""
import logging
import os
from typing import Any, Dict

import yaml
from pydantic import ValidationError

from .schema import AMCheckConfig

logger = logging.getLogger(__name__)


def load_config_dict(filepath: str) -> Dict[str, Any]:
    """
    Read the raw YAML mapping of a configuration file.

    Raises:
        FileNotFoundError: If the configuration file is not found.
        ValueError: If the YAML cannot be parsed or is not a mapping.
    """
    logger.info(f"Loading configuration from: {filepath}")
    try:
        with open(filepath, "r") as f:
            config = yaml.safe_load(f)
    except FileNotFoundError:
        logger.error(f"Configuration file not found: {filepath}")
        raise
    except yaml.YAMLError as e:
        logger.error(f"Error parsing YAML file {filepath}: {e}")
        raise ValueError(f"Invalid YAML format in {filepath}") from e

    if not isinstance(config, dict):
        raise ValueError(f"Configuration in {filepath} must be a mapping.")
    return config


def load_config(filepath: str) -> AMCheckConfig:
    """
    Load and validate a configuration file.

    Relative structure and output paths are resolved against the directory
    of the configuration file.

    Args:
        filepath (str): Path to the YAML configuration file.

    Returns:
        AMCheckConfig: The validated configuration.

    Raises:
        FileNotFoundError: If the configuration file is not found.
        ValueError: If the file is not valid YAML or fails validation.
    """
    data = load_config_dict(filepath)
    try:
        config = AMCheckConfig.model_validate(data)
    except ValidationError as e:
        logger.error(f"Configuration {filepath} failed validation: {e}")
        raise ValueError(f"Invalid configuration in {filepath}:\n{e}") from e

    base_dir = os.path.dirname(os.path.abspath(filepath))
    if config.structure.file and not os.path.isabs(config.structure.file):
        config.structure.file = os.path.join(base_dir, config.structure.file)
    if config.search.output_file and not os.path.isabs(config.search.output_file):
        config.search.output_file = os.path.join(base_dir, config.search.output_file)
    return config
