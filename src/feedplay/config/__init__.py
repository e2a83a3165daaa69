from .config import AppSettings, YamlFileFromFieldSource

__all__ = [
    "AppSettings",
    "YamlFileFromFieldSource",
]
