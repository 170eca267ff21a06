"""Client-side shopping cart, persisted to a local JSON file."""

import json
import logging
import os
import tempfile
from decimal import Decimal
from pathlib import Path

from .models import CartItem
from .pricing import calculate_subtotal

SCHEMA_VERSION = 1

log = logging.getLogger(__name__)


class CartStore:
    """
    Holds the line items of the active shopping session.

    Every mutation writes the whole cart back to disk so it survives a
    restart. Without a path the cart lives in memory only.
    """

    def __init__(self, path: Path | None = None):
        """
        Initialize CartStore.

        Args:
            path: JSON file backing the cart. Loaded immediately if it exists.
        """
        self.path = path
        self._items: list[CartItem] = []
        self._load()

    def _load(self) -> None:
        """Hydrate from disk. A corrupt file is logged and replaced by an empty cart."""
        if self.path is None or not self.path.exists():
            return

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
            version = data.get("schema_version", 0)
            if version != SCHEMA_VERSION:
                raise ValueError(f"unsupported schema version {version}")
            items = [CartItem.from_dict(i) for i in data.get("items", [])]
        except (OSError, ValueError, KeyError, TypeError, ArithmeticError) as e:
            log.warning("Failed to parse cart from %s, starting empty: %s", self.path, e)
            return

        self._items = [i for i in items if i.quantity >= 1]

    def _save(self) -> None:
        """
        Save the cart to disk atomically.

        Uses write-to-temp-then-rename for atomicity.
        """
        if self.path is None:
            return

        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "schema_version": SCHEMA_VERSION,
            "items": [i.to_dict() for i in self._items],
        }
        fd, temp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".cart_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
            os.replace(temp_path, self.path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def _find(self, product_id: int) -> CartItem | None:
        for item in self._items:
            if item.product_id == product_id:
                return item
        return None

    @property
    def items(self) -> list[CartItem]:
        return list(self._items)

    @property
    def subtotal(self) -> Decimal:
        return calculate_subtotal(self._items)

    @property
    def item_count(self) -> int:
        return sum(i.quantity for i in self._items)

    def is_empty(self) -> bool:
        return not self._items

    def snapshot(self) -> tuple[CartItem, ...]:
        """Copies of the current items, detached from later cart changes."""
        return tuple(
            CartItem(
                product_id=i.product_id,
                name=i.name,
                unit_price=i.unit_price,
                quantity=i.quantity,
                image_ref=i.image_ref,
            )
            for i in self._items
        )

    def add_item(self, item: CartItem) -> None:
        """Add a product, or increase its quantity if it is already in the cart."""
        if item.quantity < 1:
            return
        existing = self._find(item.product_id)
        if existing is not None:
            existing.quantity += item.quantity
        else:
            self._items.append(
                CartItem(
                    product_id=item.product_id,
                    name=item.name,
                    unit_price=item.unit_price,
                    quantity=item.quantity,
                    image_ref=item.image_ref,
                )
            )
        self._save()

    def update_quantity(self, product_id: int, quantity: int) -> None:
        """Set a product's quantity. Zero or less removes it."""
        existing = self._find(product_id)
        if existing is None:
            return
        if quantity <= 0:
            self._items.remove(existing)
        else:
            existing.quantity = quantity
        self._save()

    def remove_item(self, product_id: int) -> None:
        existing = self._find(product_id)
        if existing is None:
            return
        self._items.remove(existing)
        self._save()

    def clear(self) -> None:
        self._items = []
        self._save()
