from .app import create_app
from .errors import register_error_handlers
from .middleware import TrustGateMiddleware

__all__ = ["create_app", "register_error_handlers", "TrustGateMiddleware"]
