from chatty.config.settings import Config

__all__ = ["Config"]
