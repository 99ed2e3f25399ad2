import logging
import logging.config
import yaml
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(config_path: Union[str, Path],
                  level: int = logging.INFO,
                  root: Optional[logging.Logger] = None) -> None:
    """
    Configure logging from a YAML dictConfig file.
    Falls back to basicConfig when the file does not exist.
    Nothing is changed when the root logger already has handlers.
    """
    if root is None:
        root = logging.getLogger()
    if root.handlers:
        return  # already configured

    path = config_path
    if not isinstance(config_path, Path):
        path = Path(config_path)

    if not path.exists():
        logging.basicConfig(level=level, format=DEFAULT_FORMAT)
        logger.info(f'Logging config {path} not found, using defaults')
        return

    with open(path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f)

    if not isinstance(config, dict):
        raise ValueError(f'Invalid YAML root structure in {path}')

    logging.config.dictConfig(config)
