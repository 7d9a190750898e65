import mongomock
import pytest
from fastapi.testclient import TestClient

import main
from auth import create_access_token
from catalog import Catalog, CatalogCache, seed_catalog
from database import get_db
from schemas import Color, Product
from sessions import SessionRegistry

SESSION = {"X-Session-Id": "test-session"}


def make_product(pid="p1", name="Tee", price=10.0, sizes=("M",), colors=("Black",), **kwargs) -> Product:
    return Product(
        id=pid,
        name=name,
        description=kwargs.pop("description", ""),
        price=price,
        sizes=list(sizes),
        colors=[Color(name=c) for c in colors],
        images=kwargs.pop("images", ["https://example.com/tee.jpg"]),
        **kwargs,
    )


def make_user(db, email="shopper@example.com", is_admin=False, **profile):
    uid = db["user"].insert_one({"email": email, "password_hash": "unused"}).inserted_id
    db["customer"].insert_one({"_id": uid, "email": email, "is_admin": is_admin, **profile})
    token = create_access_token({"sub": str(uid)})
    return str(uid), {"Authorization": f"Bearer {token}"}


@pytest.fixture
def db():
    return mongomock.MongoClient()["storefront_test"]


@pytest.fixture
def seeded_db(db):
    seed_catalog(db)
    return db


@pytest.fixture
def catalog(seeded_db):
    return Catalog.from_database(seeded_db)


@pytest.fixture
def client(db):
    main.app.dependency_overrides[get_db] = lambda: db
    main.app.state.sessions = SessionRegistry()
    main.app.state.sessions.create(SESSION["X-Session-Id"])
    main.app.state.catalog = CatalogCache(source="database")
    with TestClient(main.app) as c:
        yield c
    main.app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(db):
    _, headers = make_user(db, email="admin@example.com", is_admin=True)
    return headers


@pytest.fixture
def shopper(db):
    return make_user(db)
