# src/messaging/domain/__init__.py
from . import entities, exceptions, protocols, services, value_objects

__all__ = ["entities", "exceptions", "protocols", "services", "value_objects"]
