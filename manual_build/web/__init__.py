from .routes import create_blueprint, create_preview_app
from .server import PreviewServer, bind_first_free, find_free_port

__all__ = ["PreviewServer", "bind_first_free", "create_blueprint", "find_free_port", "create_preview_app"]
