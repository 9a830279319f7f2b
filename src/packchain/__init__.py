from .config import load_config
from .model import BuildItem, DependencyOutput, ItemType
from .runner import execute_chain

__all__ = ["load_config", "BuildItem", "DependencyOutput", "ItemType", "execute_chain"]
