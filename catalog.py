"""
Catalog store

Products are either served from the static seed list below or read from the
product, product_image and product_variant collections and reshaped into
`schemas.Product`. The reshaping runs once per fetch; `CatalogCache` keeps the
result until an admin write invalidates it.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pymongo.database import Database

import config
from database import now_utc
from schemas import Color, Product

logger = logging.getLogger(__name__)

DEFAULT_COLOR_HEX = "#000000"
UNCATEGORIZED = "Uncategorized"


def _unsplash(photo: str) -> str:
    return f"https://images.unsplash.com/photo-{photo}?w=500&auto=format&fit=crop&q=60&ixlib=rb-4.0.3"


STATIC_PRODUCTS: List[Dict[str, Any]] = [
    {
        "id": "1",
        "name": "Urban Classic Tee",
        "description": "A timeless classic tee with a modern fit. Made from 100% organic cotton for ultimate comfort and breathability.",
        "price": 29.99,
        "colors": [{"name": "Black", "hex": "#000000"}, {"name": "White", "hex": "#FFFFFF"}, {"name": "Navy", "hex": "#000080"}],
        "sizes": ["S", "M", "L", "XL", "XXL"],
        "images": [_unsplash("1521572163474-6864f9cf17ab"), _unsplash("1622445275576-721325763ffe"), _unsplash("1583743814966-8936f5b7be1a")],
        "category": "T-Shirts",
        "featured": True,
        "tags": ["classic", "essential", "organic"],
        "stock": 100,
    },
    {
        "id": "2",
        "name": "Graphic Print Tee",
        "description": "Express your style with our eye-catching graphic print tee. Features original artwork on premium cotton blend.",
        "price": 34.99,
        "colors": [{"name": "White", "hex": "#FFFFFF"}, {"name": "Light Gray", "hex": "#D3D3D3"}],
        "sizes": ["S", "M", "L", "XL"],
        "images": [_unsplash("1576566588028-4147f3842f27"), _unsplash("1554568218-0f1715e72254"), _unsplash("1503342217505-b0a15ec3261c")],
        "category": "T-Shirts",
        "featured": True,
        "tags": ["graphic", "artwork", "statement"],
        "stock": 75,
    },
    {
        "id": "3",
        "name": "Vintage Wash Tee",
        "description": "Our vintage wash process gives this tee a perfectly broken-in look and ultra-soft feel from day one.",
        "price": 32.99,
        "colors": [{"name": "Washed Blue", "hex": "#A0B8D0"}, {"name": "Washed Green", "hex": "#A0D0B8"}, {"name": "Washed Pink", "hex": "#D0A0B8"}],
        "sizes": ["XS", "S", "M", "L", "XL", "XXL"],
        "images": [_unsplash("1521572163474-6864f9cf17ab"), _unsplash("1529374255404-311a2a4f1fd9"), _unsplash("1604006852748-903fecf64d78")],
        "category": "T-Shirts",
        "featured": True,
        "tags": ["vintage", "soft", "faded"],
        "stock": 50,
    },
    {
        "id": "4",
        "name": "Minimal Logo Tee",
        "description": "Clean and understated with our minimal logo design. Perfect for everyday wear and easy styling.",
        "price": 24.99,
        "colors": [{"name": "Black", "hex": "#000000"}, {"name": "White", "hex": "#FFFFFF"}, {"name": "Gray", "hex": "#808080"}],
        "sizes": ["S", "M", "L", "XL"],
        "images": [_unsplash("1600387521259-3c605758e3af"), _unsplash("1581655353564-df123a1eb820"), _unsplash("1523381210434-271e8be1f52b")],
        "category": "T-Shirts",
        "featured": False,
        "tags": ["minimal", "logo", "everyday"],
        "stock": 120,
    },
    {
        "id": "5",
        "name": "Eco Heavyweight Tee",
        "description": "Our heavyweight eco tee is crafted from sustainable materials with a substantial feel and premium finish.",
        "price": 39.99,
        "colors": [{"name": "Forest Green", "hex": "#228B22"}, {"name": "Earth Brown", "hex": "#8B4513"}, {"name": "Stone Gray", "hex": "#708090"}],
        "sizes": ["S", "M", "L", "XL", "XXL"],
        "images": [_unsplash("1618517351616-38fb9c5210c6"), _unsplash("1596755094514-f87e34085b2c"), _unsplash("1596722425774-b9e5f4daf60b")],
        "category": "T-Shirts",
        "featured": False,
        "tags": ["eco", "heavyweight", "sustainable"],
        "stock": 40,
    },
    {
        "id": "6",
        "name": "Color Block Tee",
        "description": "Stand out with our bold color block design. Features contrasting panels and a relaxed contemporary fit.",
        "price": 36.99,
        "colors": [{"name": "Blue/White", "hex": "#0000FF"}, {"name": "Black/Red", "hex": "#FF0000"}],
        "sizes": ["S", "M", "L", "XL"],
        "images": [_unsplash("1633966887768-64f9a867bdba"), _unsplash("1583744946564-b52d01e2e2ff"), _unsplash("1564859228273-274232fdb516")],
        "category": "T-Shirts",
        "featured": True,
        "tags": ["colorblock", "modern", "bold"],
        "stock": 60,
    },
    {
        "id": "7",
        "name": "Essential Pocket Tee",
        "description": "The perfect basic with an added chest pocket detail. Made from soft cotton with a relaxed fit.",
        "price": 22.99,
        "colors": [{"name": "White", "hex": "#FFFFFF"}, {"name": "Black", "hex": "#000000"}, {"name": "Heather Gray", "hex": "#D3D3D3"}, {"name": "Navy", "hex": "#000080"}],
        "sizes": ["XS", "S", "M", "L", "XL", "XXL"],
        "images": [_unsplash("1586790170083-2f9ceadc732d"), _unsplash("1626497764746-6dc36546b388"), _unsplash("1503341504253-dff4815485f1")],
        "category": "T-Shirts",
        "featured": False,
        "tags": ["pocket", "essential", "basic"],
        "stock": 150,
    },
    {
        "id": "8",
        "name": "Striped Sailor Tee",
        "description": "Classic striped pattern inspired by traditional sailor uniforms. Made from medium-weight cotton.",
        "price": 28.99,
        "colors": [{"name": "Navy/White", "hex": "#000080"}, {"name": "Black/White", "hex": "#000000"}],
        "sizes": ["S", "M", "L", "XL"],
        "images": [_unsplash("1576871337622-98d48d1cf531"), _unsplash("1551107696-a4b0c5a0d9a2"), _unsplash("1475178626620-a4d074967452")],
        "category": "T-Shirts",
        "featured": False,
        "tags": ["striped", "nautical", "classic"],
        "stock": 70,
    },
]


def project_variants(variants: Iterable[Dict[str, Any]]) -> Dict[str, Tuple[List[Color], List[str]]]:
    """Group variant rows by product id into (unique colors, unique sizes).

    Both lists keep first-seen order. A color name keeps the hex of the first
    row that mentions it.
    """
    colors: Dict[str, Dict[str, Color]] = {}
    sizes: Dict[str, Dict[str, None]] = {}
    for variant in variants:
        pid = str(variant.get("product_id"))
        color_name = variant.get("color")
        if color_name:
            colors.setdefault(pid, {}).setdefault(
                color_name, Color(name=color_name, hex=variant.get("color_hex") or DEFAULT_COLOR_HEX)
            )
        size = variant.get("size")
        if size:
            sizes.setdefault(pid, {})[size] = None
    return {
        pid: (list(colors.get(pid, {}).values()), list(sizes.get(pid, {})))
        for pid in set(colors) | set(sizes)
    }


def build_product(doc: Dict[str, Any], images: Optional[List[str]] = None,
                  colors: Optional[List[Color]] = None, sizes: Optional[List[str]] = None) -> Product:
    category = doc.get("category") or UNCATEGORIZED
    return Product(
        id=str(doc.get("id") or doc.get("_id")),
        name=doc["name"],
        description=doc.get("description") or "",
        price=float(doc.get("price", 0)),
        stock=int(doc.get("stock") or 0),
        category=category,
        featured=bool(doc.get("featured", False)),
        images=images or doc.get("images") or [config.PLACEHOLDER_IMAGE],
        colors=colors if colors else doc.get("colors") or [],
        sizes=sizes if sizes else doc.get("sizes") or [],
        tags=doc.get("tags") or [category],
    )


class Catalog:
    """Read-only, ordered product collection with id lookup."""

    def __init__(self, products: Iterable[Product]):
        self._products = list(products)
        self._by_id = {p.id: p for p in self._products}

    @classmethod
    def from_static(cls) -> "Catalog":
        return cls(build_product(p) for p in STATIC_PRODUCTS)

    @classmethod
    def from_database(cls, db: Database) -> "Catalog":
        docs = list(db["product"].find({}).sort("_id", 1))
        ids = [str(d["_id"]) for d in docs]

        images: Dict[str, List[str]] = {}
        for row in db["product_image"].find({"product_id": {"$in": ids}}).sort("position", 1):
            images.setdefault(str(row["product_id"]), []).append(row["url"])

        variants = project_variants(db["product_variant"].find({"product_id": {"$in": ids}}))

        products = []
        for doc in docs:
            pid = str(doc["_id"])
            colors, sizes = variants.get(pid, ([], []))
            try:
                products.append(build_product(doc, images.get(pid), colors, sizes))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed product %s", pid, exc_info=True)
        logger.info("Loaded %d products from database", len(products))
        return cls(products)

    @property
    def products(self) -> List[Product]:
        return list(self._products)

    def get(self, product_id: str) -> Optional[Product]:
        return self._by_id.get(str(product_id))

    def featured(self, limit: Optional[int] = None) -> List[Product]:
        items = [p for p in self._products if p.featured]
        return items[:limit] if limit else items

    def __len__(self) -> int:
        return len(self._products)

    def __iter__(self):
        return iter(self._products)


class CatalogCache:
    """Memoizes the projected catalog until invalidated."""

    def __init__(self, source: str = config.CATALOG_SOURCE):
        self.source = source
        self._catalog: Optional[Catalog] = None

    def get(self, db: Optional[Database]) -> Catalog:
        if self._catalog is None:
            if self.source == "static":
                self._catalog = Catalog.from_static()
            elif db is None:
                raise RuntimeError("Database catalog requested without a database")
            else:
                self._catalog = Catalog.from_database(db)
        return self._catalog

    def invalidate(self) -> None:
        self._catalog = None


def seed_catalog(db: Database) -> int:
    """Insert the static products with image and variant rows. Returns the number inserted."""
    if db["product"].count_documents({}) > 0:
        return 0
    inserted = 0
    for item in STATIC_PRODUCTS:
        doc = {k: item[k] for k in ("name", "description", "price", "stock", "category", "featured", "tags")}
        doc.update({"created_at": now_utc(), "updated_at": now_utc()})
        pid = str(db["product"].insert_one(doc).inserted_id)
        db["product_image"].insert_many(
            [{"product_id": pid, "url": url, "position": i} for i, url in enumerate(item["images"])]
        )
        combos = [(size, color) for size in item["sizes"] for color in item["colors"]]
        per_variant = item["stock"] // len(combos)
        db["product_variant"].insert_many([
            {"product_id": pid, "size": size, "color": color["name"], "color_hex": color["hex"], "stock": per_variant}
            for size, color in combos
        ])
        inserted += 1
    logger.info("Seeded %d products", inserted)
    return inserted
