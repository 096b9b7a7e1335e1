"""
Configurable logging setup for the proximity API.

Loads the logging configuration from a YAML file.
"""
import logging
import logging.config
from pathlib import Path
from typing import Optional, Union

import yaml

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(config_path: Optional[Union[str, Path]] = None, default_level: int = logging.INFO):
    """
    Configure logging from a YAML dictConfig file.

    Args:
        config_path: Path to the YAML config. Defaults to
                     proximity/config/logging_config.yaml
        default_level: Level used by the basicConfig fallback
    """
    if config_path is None:
        config_path = Path(__file__).parent / "logging_config.yaml"

    config_path = Path(config_path)

    if config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)

            logging.config.dictConfig(config)

            logger = logging.getLogger(__name__)
            logger.info(f"Logging configured from: {config_path}")

        except (OSError, ValueError, TypeError, AttributeError, ImportError, yaml.YAMLError) as e:
            # Fall back to basic configuration if the file is unusable
            logging.basicConfig(level=default_level, format=DEFAULT_FORMAT)
            logging.error(f"Failed to load logging configuration: {e}")
            logging.warning("Using default logging configuration")
    else:
        logging.basicConfig(level=default_level, format=DEFAULT_FORMAT)
        logging.warning(f"Logging configuration not found: {config_path}")
        logging.info("Using default logging configuration")


def get_logger(name: str) -> logging.Logger:
    """
    Return a configured logger.

    Args:
        name: Logger name (usually the module's __name__)
    """
    return logging.getLogger(name)
