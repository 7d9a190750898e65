import config
from catalog import Catalog, CatalogCache, STATIC_PRODUCTS, build_product, project_variants, seed_catalog


def test_project_variants_groups_unique_colors_and_sizes():
    variants = [
        {"product_id": "p1", "size": "M", "color": "Black", "color_hex": "#000000"},
        {"product_id": "p1", "size": "L", "color": "Black", "color_hex": "#111111"},
        {"product_id": "p1", "size": "M", "color": "White", "color_hex": "#FFFFFF"},
        {"product_id": "p2", "size": "S", "color": "Red"},
    ]
    projected = project_variants(variants)

    colors, sizes = projected["p1"]
    assert [(c.name, c.hex) for c in colors] == [("Black", "#000000"), ("White", "#FFFFFF")]
    assert sizes == ["M", "L"]

    colors, sizes = projected["p2"]
    assert colors[0].hex == "#000000"
    assert sizes == ["S"]


def test_build_product_fallbacks():
    product = build_product({"_id": "abc", "name": "Plain", "price": 5})
    assert product.id == "abc"
    assert product.images == [config.PLACEHOLDER_IMAGE]
    assert product.category == "Uncategorized"
    assert product.tags == ["Uncategorized"]
    assert product.description == ""


def test_product_sizes_deduplicated():
    product = build_product({"id": "x", "name": "Dup", "price": 1, "sizes": ["M", "L", "M"]})
    assert product.sizes == ["M", "L"]


def test_static_catalog():
    catalog = Catalog.from_static()
    assert len(catalog) == len(STATIC_PRODUCTS)
    assert catalog.get("1").name == "Urban Classic Tee"
    assert catalog.get("missing") is None
    assert [p.id for p in catalog.featured()] == ["1", "2", "3", "6"]
    assert len(catalog.featured(limit=2)) == 2


def test_seed_and_load_from_database(db):
    assert seed_catalog(db) == len(STATIC_PRODUCTS)
    assert seed_catalog(db) == 0

    catalog = Catalog.from_database(db)
    names = [p.name for p in catalog]
    assert names == [p["name"] for p in STATIC_PRODUCTS]

    first = catalog.products[0]
    assert first.sizes == ["S", "M", "L", "XL", "XXL"]
    assert [c.name for c in first.colors] == ["Black", "White", "Navy"]
    assert len(first.images) == 3


def test_admin_product_without_variants_uses_document_fields(db):
    db["product"].insert_one({"name": "Cap", "price": 12.5, "stock": 3, "sizes": ["One Size"],
                              "colors": [{"name": "Olive", "hex": "#808000"}]})
    product = Catalog.from_database(db).products[0]
    assert product.sizes == ["One Size"]
    assert product.colors[0].name == "Olive"
    assert product.images == [config.PLACEHOLDER_IMAGE]


def test_cache_memoizes_until_invalidated(seeded_db):
    cache = CatalogCache(source="database")
    first = cache.get(seeded_db)
    assert cache.get(seeded_db) is first

    seeded_db["product"].insert_one({"name": "New Tee", "price": 20})
    assert len(cache.get(seeded_db)) == len(first)

    cache.invalidate()
    assert len(cache.get(seeded_db)) == len(first) + 1


def test_static_cache_needs_no_database():
    cache = CatalogCache(source="static")
    assert len(cache.get(None)) == len(STATIC_PRODUCTS)


def test_malformed_rows_are_skipped(seeded_db):
    seeded_db["product"].insert_one({"name": "No Price", "price": None})
    seeded_db["product"].insert_one({"price": 5})
    catalog = Catalog.from_database(seeded_db)
    assert len(catalog) == len(STATIC_PRODUCTS)
