from . import prompts, videos

__all__ = ["prompts", "videos"]
