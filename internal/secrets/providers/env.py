import os

from internal.secrets.base import SecretProvider


class EnvSecretProvider(SecretProvider):
    """Reads secrets from the process environment (or an injected mapping)."""

    def __init__(self, environ=None):
        self._environ = os.environ if environ is None else environ

    def get(self, key):
        return self._environ.get(key)
