from abc import ABC, abstractmethod

MAINTENANCE_HEADER_NAME = "MAINTENANCE_HEADER_NAME"
MAINTENANCE_HEADER_SECRET = "MAINTENANCE_HEADER_SECRET"


class SecretProvider(ABC):
    @abstractmethod
    def get(self, key):
        """Return the secret value for `key`, or None when it is not set."""
        raise NotImplementedError
