"""
Utility functions for Django settings configuration.

Loads environment-specific ``.env`` files with python-decouple.
"""

from pathlib import Path

from decouple import Config, RepositoryEnv
from decouple import config as default_config


def load_environment_config(environment):
    """
    Load environment-specific configuration from the appropriate .env file.

    Args:
        environment (str): 'development', 'production' or 'test'

    Returns:
        A decouple config callable reading from the environment's .env file,
        or the default decouple config (process environment plus ``.env``)
        when that file does not exist
    """
    env_files = {
        "development": ".env.dev",
        "production": ".env.production",
        "test": ".env.test",
    }

    env_file_name = env_files.get(environment, ".env")
    # Repository root, next to pyproject.toml
    env_file_path = Path(__file__).resolve().parent.parent.parent.parent / env_file_name

    if env_file_path.exists():
        print(f"✓ Loading environment: {environment} from {env_file_name}")
        return Config(RepositoryEnv(env_file_path))

    return default_config
