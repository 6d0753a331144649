# src/configs/config.py
import yaml
from pathlib import Path
from functools import lru_cache


class Config:
    """
    Static data files for the matchmaking core.
    """

    # 1. Setup Base Paths
    # This points to src/configs/
    CONFIG_DIR = Path(__file__).parent.resolve()

    # 2. Define File Paths
    INGESTION_CONFIG_PATH = CONFIG_DIR / "ingestion.yaml"
    TAXONOMY_DATA_PATH = CONFIG_DIR / "taxonomy.yaml"

    @classmethod
    @lru_cache
    def load_ingestion_config(cls) -> dict:
        """Loads the YAML configuration for attendee uploads."""
        return _load_yaml(cls.INGESTION_CONFIG_PATH)

    @classmethod
    @lru_cache
    def load_taxonomy(cls) -> dict:
        """Loads the role/interest taxonomy used to derive actor categories."""
        return _load_yaml(cls.TAXONOMY_DATA_PATH)

    @classmethod
    def load_file(cls, path) -> dict:
        """Loads an alternative YAML file (e.g. a settings override path)."""
        return _load_yaml(Path(path))

    @classmethod
    def get_taxonomy_path(cls) -> Path:
        """Returns the absolute path to the taxonomy YAML."""
        return cls.TAXONOMY_DATA_PATH


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        raise FileNotFoundError(f"Missing config at {path}")

    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}
