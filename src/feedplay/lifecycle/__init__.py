from .manager import LifecycleManager

__all__ = ["LifecycleManager"]
