"""
Shopping cart

In-memory line items owned by one shopper session. A line is identified by
(product id, size, color name); adding the same combination again increases
the quantity of the existing line.
"""

import threading
from typing import Callable, List, Optional, Tuple

from pydantic import BaseModel, Field

from schemas import Color, Product

MergeKey = Tuple[str, str, str]


class CartLine(BaseModel):
    product: Product
    quantity: int = Field(..., ge=0)
    size: str
    color: Color
    unit_price: float = Field(..., ge=0, description="Product price captured when the line was added")
    variant_id: Optional[str] = None

    @property
    def key(self) -> MergeKey:
        return (self.product.id, self.size, self.color.name)

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity


class CartStore:
    def __init__(self, notify: Optional[Callable[[str], None]] = None):
        self._lines: List[CartLine] = []
        self._notify = notify
        # routes run in a threadpool, so every mutation goes through this lock
        self._lock = threading.RLock()

    @property
    def lines(self) -> List[CartLine]:
        return list(self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    def is_empty(self) -> bool:
        return not self._lines

    def find(self, product_id: str, size: str, color_name: str) -> Optional[CartLine]:
        key = (product_id, size, color_name)
        return next((line for line in self._lines if line.key == key), None)

    def snapshot(self) -> List[CartLine]:
        """Detached copies of the current lines."""
        with self._lock:
            return [line.model_copy() for line in self._lines]

    def add_item(self, product: Product, quantity: int, size: str, color: Color) -> CartLine:
        # quantities below one are clamped up to one
        quantity = max(1, int(quantity))
        with self._lock:
            line = self.find(product.id, size, color.name)
            if line is not None:
                line.quantity += quantity
            else:
                line = CartLine(product=product, quantity=quantity, size=size, color=color, unit_price=product.price)
                self._lines.append(line)
        if self._notify:
            self._notify(f"Added {quantity} {product.name} to cart")
        return line

    def remove_item(self, product_id: str) -> int:
        """Drop every line of the product, whatever its size or color."""
        with self._lock:
            before = len(self._lines)
            self._lines = [line for line in self._lines if line.product.id != product_id]
            return before - len(self._lines)

    def update_quantity(self, product_id: str, quantity: int) -> int:
        """Set the quantity on every line of the product.

        A quantity of zero or less removes those lines. Returns the number of
        lines touched.
        """
        quantity = int(quantity)
        if quantity <= 0:
            return self.remove_item(product_id)
        touched = 0
        with self._lock:
            for line in self._lines:
                if line.product.id == product_id:
                    line.quantity = quantity
                    touched += 1
        return touched

    def remove_ordered(self, ordered: List[CartLine]) -> None:
        """Take ordered quantities out of the cart.

        Anything added after the snapshot was taken stays in the cart.
        """
        with self._lock:
            for item in ordered:
                line = self.find(*item.key)
                if line is not None:
                    line.quantity -= item.quantity
            self._lines = [line for line in self._lines if line.quantity > 0]

    def clear(self) -> None:
        with self._lock:
            self._lines = []

    def get_total(self) -> float:
        return sum(line.line_total for line in self._lines)

    def get_item_count(self) -> int:
        return sum(line.quantity for line in self._lines)
