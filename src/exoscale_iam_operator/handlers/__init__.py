"""Handler modules for CRD resources."""

# Import handlers to register them - all handlers register themselves via @kopf decorators
from . import iamkey  # noqa: F401
from . import provider_config  # noqa: F401
from .iamkey import IAMKeyHandler
from .provider_config import ProviderConfigHandler
from ..constants import KIND_IAM_KEY, KIND_PROVIDER_CONFIG

HANDLERS = {
    KIND_IAM_KEY: iamkey._handler,
    KIND_PROVIDER_CONFIG: provider_config._handler,
}

__all__ = ["HANDLERS", "IAMKeyHandler", "ProviderConfigHandler"]
