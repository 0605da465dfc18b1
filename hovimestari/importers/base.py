from abc import ABC, abstractmethod


class Importer(ABC):
    name: str

    @abstractmethod
    def run(self) -> int:
        """Fetch from the external source into the store. Returns items written."""
        ...
