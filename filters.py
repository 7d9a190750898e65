"""
Product filtering and sorting

Text, price, size and color predicates are ANDed together. Size and color
selections match a product offering any one of the selected values. The
price range is given in percent of the full catalog's price span, so the
bounds do not move when other filters narrow the result.
"""

from typing import List, Literal, Optional, Sequence, Tuple

from pydantic import BaseModel, Field, model_validator

from schemas import Product

SortKey = Literal["newest", "price-asc", "price-desc", "name-asc"]


class FilterCriteria(BaseModel):
    search: Optional[str] = None
    price_range: Tuple[float, float] = (0, 100)
    sizes: List[str] = Field(default_factory=list)
    colors: List[str] = Field(default_factory=list)
    sort: SortKey = "newest"

    @model_validator(mode="after")
    def check_price_range(self):
        lo, hi = self.price_range
        if not (0 <= lo <= hi <= 100):
            raise ValueError("price_range must satisfy 0 <= low <= high <= 100")
        return self


def price_bounds(products: Sequence[Product]) -> Tuple[float, float]:
    if not products:
        return 0.0, 0.0
    prices = [p.price for p in products]
    return min(prices), max(prices)


def _absolute_price(low: float, high: float, percent: float) -> float:
    # endpoints map exactly onto the catalog bounds
    if percent <= 0:
        return low
    if percent >= 100:
        return high
    return low + (percent / 100) * (high - low)


def matches_search(product: Product, text: str) -> bool:
    needle = text.lower()
    return (
        needle in product.name.lower()
        or needle in product.description.lower()
        or any(needle in tag.lower() for tag in product.tags)
    )


def filter_products(products: Sequence[Product], criteria: FilterCriteria) -> List[Product]:
    if not products:
        return []

    low, high = price_bounds(products)
    price_min = _absolute_price(low, high, criteria.price_range[0])
    price_max = _absolute_price(low, high, criteria.price_range[1])

    sizes = set(criteria.sizes)
    colors = set(criteria.colors)
    search = (criteria.search or "").strip()

    result = []
    for product in products:
        if search and not matches_search(product, search):
            continue
        if not (price_min <= product.price <= price_max):
            continue
        if sizes and not sizes.intersection(product.sizes):
            continue
        if colors and not colors.intersection(c.name for c in product.colors):
            continue
        result.append(product)

    return sort_products(result, criteria.sort)


def sort_products(products: Sequence[Product], sort: SortKey = "newest") -> List[Product]:
    # sorted() is stable, so equal keys keep catalog order
    if sort == "price-asc":
        return sorted(products, key=lambda p: p.price)
    if sort == "price-desc":
        return sorted(products, key=lambda p: p.price, reverse=True)
    if sort == "name-asc":
        return sorted(products, key=lambda p: p.name.casefold())
    return list(products)
