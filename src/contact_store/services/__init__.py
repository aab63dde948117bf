from .contacts import ContactService

__all__ = ["ContactService"]
