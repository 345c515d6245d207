import os

from internal.models.errors import ConfigError
from internal.secrets.providers.env import EnvSecretProvider
from internal.secrets.providers.static import StaticSecretProvider


def get_secret_provider(kind=None, values=None):
    """Return a fresh secret provider.

    kind defaults to SECRET_PROVIDER from the environment, then 'env'.
    'static' serves the given `values` mapping.
    """
    kind = kind or os.environ.get("SECRET_PROVIDER", "env")
    if kind == "env":
        return EnvSecretProvider(values)
    if kind == "static":
        return StaticSecretProvider(values)
    raise ConfigError(f"Unknown secret provider: '{kind}'")
