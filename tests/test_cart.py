import pytest

from cart import CartStore
from conftest import make_product
from schemas import Color

BLACK = Color(name="Black", hex="#000000")
WHITE = Color(name="White", hex="#FFFFFF")


@pytest.fixture
def messages():
    return []


@pytest.fixture
def cart(messages):
    return CartStore(notify=messages.append)


@pytest.fixture
def tee():
    return make_product("p1", "Urban Classic Tee", 29.99, sizes=["M", "L"], colors=["Black", "White"])


@pytest.fixture
def hoodie():
    return make_product("p2", "Hoodie", 20.0, sizes=["M"], colors=["Black"])


def test_identical_variant_merges(cart, tee):
    cart.add_item(tee, 2, "M", BLACK)
    cart.add_item(tee, 3, "M", BLACK)
    assert len(cart) == 1
    assert cart.lines[0].quantity == 5


def test_different_size_is_a_new_line(cart, tee):
    cart.add_item(tee, 1, "M", BLACK)
    cart.add_item(tee, 1, "L", BLACK)
    assert len(cart) == 2


def test_different_color_is_a_new_line(cart, tee):
    cart.add_item(tee, 1, "M", BLACK)
    cart.add_item(tee, 1, "M", WHITE)
    assert {line.key for line in cart.lines} == {("p1", "M", "Black"), ("p1", "M", "White")}


def test_quantity_below_one_is_clamped(cart, tee):
    cart.add_item(tee, 0, "M", BLACK)
    cart.add_item(tee, -4, "L", BLACK)
    assert [line.quantity for line in cart.lines] == [1, 1]


def test_add_emits_notification(cart, tee, messages):
    cart.add_item(tee, 2, "M", BLACK)
    assert messages == ["Added 2 Urban Classic Tee to cart"]


def test_unit_price_is_captured_at_add_time(cart, tee):
    cart.add_item(tee, 1, "M", BLACK)
    tee.price = 99.0
    cart.add_item(tee, 1, "L", BLACK)
    assert [line.unit_price for line in cart.lines] == [29.99, 99.0]
    assert cart.get_total() == pytest.approx(128.99)


def test_totals(cart, tee, hoodie):
    cart.add_item(tee, 2, "M", BLACK)
    cart.add_item(hoodie, 1, "M", BLACK)
    assert cart.get_total() == pytest.approx(2 * 29.99 + 20.0)
    assert cart.get_item_count() == 3


def test_remove_drops_all_variants_of_product(cart, tee, hoodie):
    cart.add_item(tee, 1, "M", BLACK)
    cart.add_item(tee, 1, "L", WHITE)
    cart.add_item(hoodie, 1, "M", BLACK)
    assert cart.remove_item("p1") == 2
    assert [line.product.id for line in cart.lines] == ["p2"]
    assert cart.get_total() == pytest.approx(20.0)


def test_update_quantity_sets_every_line_of_product(cart, tee, hoodie):
    cart.add_item(tee, 1, "M", BLACK)
    cart.add_item(tee, 5, "L", BLACK)
    cart.add_item(hoodie, 2, "M", BLACK)
    assert cart.update_quantity("p1", 3) == 2
    assert [line.quantity for line in cart.lines] == [3, 3, 2]
    assert cart.get_total() == pytest.approx(6 * 29.99 + 40.0)
    assert cart.get_item_count() == 8


def test_update_quantity_to_zero_removes(cart, tee, hoodie):
    cart.add_item(tee, 2, "M", BLACK)
    cart.add_item(hoodie, 1, "M", BLACK)
    cart.update_quantity("p1", 0)
    assert [line.product.id for line in cart.lines] == ["p2"]
    cart.update_quantity("p2", -1)
    assert cart.is_empty()


def test_update_unknown_product_touches_nothing(cart, tee):
    cart.add_item(tee, 1, "M", BLACK)
    assert cart.update_quantity("missing", 4) == 0
    assert cart.lines[0].quantity == 1


def test_clear(cart, tee):
    cart.add_item(tee, 1, "M", BLACK)
    cart.clear()
    assert cart.is_empty()
    assert cart.get_total() == 0
    assert cart.get_item_count() == 0


def test_lines_is_a_copy(cart, tee):
    cart.add_item(tee, 1, "M", BLACK)
    cart.lines.clear()
    assert len(cart) == 1


def test_remove_ordered_keeps_later_additions():
    cart = CartStore()
    tee = make_product("t1", "Tee", 10.0)
    cart.add_item(tee, 2, "M", Color(name="Black"))
    ordered = cart.snapshot()
    cart.add_item(tee, 1, "M", Color(name="Black"))
    cart.add_item(tee, 1, "L", Color(name="Black"))

    cart.remove_ordered(ordered)
    assert sorted((line.size, line.quantity) for line in cart.lines) == [("L", 1), ("M", 1)]
