"""Menu catalog port.

Menus are maintained by the catalog service. The storefront only reads them,
to price carts and to re-price orders server-side at creation time. Adapters
implement ``MenuCatalog``; ``InMemoryMenuCatalog`` backs development and
tests and can be loaded from the same JSON shape the catalog service emits.
"""

from abc import ABC, abstractmethod

from storefront.menu.options import MenuItem


class MenuCatalog(ABC):
    @abstractmethod
    def get_item(self, store_id: str, item_id: str) -> MenuItem | None:
        """Return the current menu item, or None if the store has no such item."""
        ...


class InMemoryMenuCatalog(MenuCatalog):
    def __init__(self) -> None:
        self._items: dict[tuple[str, str], MenuItem] = {}

    def add_item(self, store_id: str, item: MenuItem) -> None:
        self._items[(str(store_id), item.id)] = item

    def load(self, store_id: str, items: list[dict]) -> None:
        for data in items:
            self.add_item(store_id, MenuItem.from_dict(data))

    def get_item(self, store_id: str, item_id: str) -> MenuItem | None:
        return self._items.get((str(store_id), str(item_id)))

    def items_for(self, store_id: str) -> list[MenuItem]:
        return [item for (sid, _), item in self._items.items() if sid == str(store_id)]

    def clear(self) -> None:
        self._items.clear()


_current_catalog: MenuCatalog | None = None


def get_catalog() -> MenuCatalog:
    """Return the active menu catalog. Defaults to an empty in-memory one."""
    global _current_catalog
    if _current_catalog is None:
        _current_catalog = InMemoryMenuCatalog()
    return _current_catalog


def set_catalog(catalog: MenuCatalog) -> None:
    global _current_catalog
    _current_catalog = catalog


def reset_catalog() -> None:
    global _current_catalog
    _current_catalog = None
