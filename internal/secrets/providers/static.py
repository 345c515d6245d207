from internal.secrets.base import SecretProvider


class StaticSecretProvider(SecretProvider):
    def __init__(self, values=None):
        self._values = dict(values or {})

    def get(self, key):
        return self._values.get(key)
