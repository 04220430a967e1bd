from abc import ABC, abstractmethod

class BaseDatabaseDriver(ABC):
    """Connection lifecycle shared by the relational store and redis."""

    @abstractmethod
    async def connect(self):
        pass

    @abstractmethod
    async def disconnect(self):
        pass
