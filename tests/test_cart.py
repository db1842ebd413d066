from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from marketplace.core.exceptions import InsufficientStock
from marketplace.core.principal import Principal
from marketplace.core.security import create_access_token, hash_password
from marketplace.models.cart import CartItem
from marketplace.models.product import Product
from marketplace.models.user import User, UserRole
from marketplace.repositories.user import UserRepository
from marketplace.services.cart_service import CartService
from marketplace.services.product_service import ProductService


def _create_user(db: Session, username: str, role: UserRole = UserRole.BUYER) -> User:
    user = User(
        username=username,
        email=f"{username}@example.com",
        password_hash=hash_password("StrongPass1"),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def _create_product(db: Session, name: str, price: str, stock: int, seller: User = None) -> Product:
    if seller is None:
        seller = _create_user(db, f"seller-{name.lower()}", role=UserRole.SELLER)
    product = Product(seller_id=seller.id, name=name, price=Decimal(price), stock=stock)
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


def _auth_headers(user: User) -> dict:
    token = create_access_token(data={"sub": str(user.id), "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


def _principal(user: User) -> Principal:
    return Principal(id=user.id, role=user.role)


def test_add_to_cart_creates_line(client: TestClient, db_session: Session):
    buyer = _create_user(db_session, "cartbuyer")
    product = _create_product(db_session, "Phone", "10000.00", 5)

    response = client.post(
        "/api/cart",
        headers=_auth_headers(buyer),
        json={"product_id": product.id, "quantity": 2},
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["quantity"] == 2
    assert data["subtotal"] == 20000


def test_add_same_product_merges_line(client: TestClient, db_session: Session):
    buyer = _create_user(db_session, "merger")
    product = _create_product(db_session, "Cable", "5.00", 10)
    headers = _auth_headers(buyer)

    first = client.post("/api/cart", headers=headers, json={"product_id": product.id, "quantity": 2})
    second = client.post("/api/cart", headers=headers, json={"product_id": product.id, "quantity": 3})

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json()["data"]["id"] == first.json()["data"]["id"]
    assert second.json()["data"]["quantity"] == 5
    assert second.json()["data"]["subtotal"] == 25
    assert db_session.query(CartItem).filter(CartItem.user_id == buyer.id).count() == 1


def test_failed_merge_leaves_line_untouched(client: TestClient, db_session: Session):
    buyer = _create_user(db_session, "overmerge")
    product = _create_product(db_session, "Tablet", "300.00", 5)
    headers = _auth_headers(buyer)
    client.post("/api/cart", headers=headers, json={"product_id": product.id, "quantity": 4})

    response = client.post("/api/cart", headers=headers, json={"product_id": product.id, "quantity": 2})

    assert response.status_code == 400
    assert response.json()["message"] == "Insufficient stock. Only 5 items available"
    db_session.expire_all()
    line = db_session.query(CartItem).filter(CartItem.user_id == buyer.id).one()
    assert line.quantity == 4
    assert line.subtotal == Decimal("1200.00")


@pytest.mark.parametrize(
    "payload",
    [
        {"quantity": 1},
        {"product_id": 1},
        {"product_id": 1, "quantity": 0},
        {"product_id": 1, "quantity": -3},
    ],
)
def test_add_to_cart_invalid_input(client: TestClient, db_session: Session, payload):
    buyer = _create_user(db_session, "badinput")
    _create_product(db_session, "Widget", "1.00", 5)

    response = client.post("/api/cart", headers=_auth_headers(buyer), json=payload)

    assert response.status_code == 400
    assert response.json()["errors"] == [{"code": "invalid_input"}]


def test_add_to_cart_insufficient_stock(client: TestClient, db_session: Session):
    buyer = _create_user(db_session, "greedy")
    product = _create_product(db_session, "Rare", "50.00", 1)

    response = client.post(
        "/api/cart",
        headers=_auth_headers(buyer),
        json={"product_id": product.id, "quantity": 2},
    )

    assert response.status_code == 400
    assert response.json()["errors"] == [{"code": "insufficient_stock"}]
    assert db_session.query(CartItem).count() == 0


def test_add_inactive_or_missing_product(client: TestClient, db_session: Session):
    buyer = _create_user(db_session, "looker")
    product = _create_product(db_session, "Gone", "50.00", 3)
    product.is_active = False
    db_session.commit()

    response = client.post(
        "/api/cart",
        headers=_auth_headers(buyer),
        json={"product_id": product.id, "quantity": 1},
    )
    assert response.status_code == 404

    response = client.post(
        "/api/cart",
        headers=_auth_headers(buyer),
        json={"product_id": 9999, "quantity": 1},
    )
    assert response.status_code == 404


def test_get_cart_lists_lines_newest_first_with_totals(client: TestClient, db_session: Session):
    buyer = _create_user(db_session, "viewer")
    seller = _create_user(db_session, "vendor", role=UserRole.SELLER)
    older = _create_product(db_session, "Older", "10.00", 10, seller)
    newer = _create_product(db_session, "Newer", "2.50", 10, seller)
    headers = _auth_headers(buyer)
    client.post("/api/cart", headers=headers, json={"product_id": older.id, "quantity": 1})
    client.post("/api/cart", headers=headers, json={"product_id": newer.id, "quantity": 4})

    response = client.get(f"/api/cart/{buyer.id}", headers=headers)

    assert response.status_code == 200
    payload = response.json()
    assert [line["product"]["name"] for line in payload["data"]] == ["Newer", "Older"]
    assert payload["total_items"] == 2
    assert payload["total_price"] == 20
    assert payload["data"][0]["product"]["stock"] == 10


def test_cart_total_falls_back_to_live_price_without_subtotal(client: TestClient, db_session: Session):
    buyer = _create_user(db_session, "legacy")
    product = _create_product(db_session, "Legacy", "7.00", 10)
    db_session.add(CartItem(user_id=buyer.id, product_id=product.id, quantity=3, subtotal=None))
    db_session.commit()

    response = client.get(f"/api/cart/{buyer.id}/summary", headers=_auth_headers(buyer))

    assert response.status_code == 200
    assert response.json()["data"] == {"total_items": 1, "total_quantity": 3, "total_price": 21}


def test_empty_cart_summary_is_zeroed(client: TestClient, db_session: Session):
    buyer = _create_user(db_session, "emptyhanded")

    response = client.get(f"/api/cart/{buyer.id}/summary", headers=_auth_headers(buyer))

    assert response.status_code == 200
    assert response.json()["data"] == {"total_items": 0, "total_quantity": 0, "total_price": 0}


def test_get_cart_for_missing_user(client: TestClient, db_session: Session):
    admin = _create_user(db_session, "cartadmin", role=UserRole.ADMIN)

    response = client.get("/api/cart/9999", headers=_auth_headers(admin))

    assert response.status_code == 404
    assert response.json()["message"] == "User not found"


def test_cannot_view_another_users_cart(client: TestClient, db_session: Session):
    buyer = _create_user(db_session, "private")
    snoop = _create_user(db_session, "snoop")

    response = client.get(f"/api/cart/{buyer.id}", headers=_auth_headers(snoop))

    assert response.status_code == 403


def test_update_quantity(client: TestClient, db_session: Session):
    buyer = _create_user(db_session, "updater")
    product = _create_product(db_session, "Book", "12.50", 10)
    headers = _auth_headers(buyer)
    item_id = client.post(
        "/api/cart", headers=headers, json={"product_id": product.id, "quantity": 1}
    ).json()["data"]["id"]

    response = client.put(f"/api/cart/{item_id}", headers=headers, json={"quantity": 4})
    assert response.status_code == 200
    assert response.json()["data"]["quantity"] == 4
    assert response.json()["data"]["subtotal"] == 50

    response = client.put(f"/api/cart/{item_id}", headers=headers, json={"quantity": 11})
    assert response.status_code == 400

    response = client.put(f"/api/cart/{item_id}", headers=headers, json={"quantity": 0})
    assert response.status_code == 400
    assert response.json()["errors"] == [{"code": "invalid_input"}]


def test_update_quantity_takes_user_lock(db_session: Session, monkeypatch):
    buyer = _create_user(db_session, "lockedupdater")
    product = _create_product(db_session, "Mug", "8.00", 5)
    service = CartService(db_session)
    item, _ = service.add_to_cart(_principal(buyer), product.id, 1)

    locked = []
    original = UserRepository.get_for_update

    def recording_lock(self, user_id):
        locked.append(user_id)
        return original(self, user_id)

    monkeypatch.setattr(UserRepository, "get_for_update", recording_lock)

    updated = service.update_quantity(_principal(buyer), item.id, 3)

    assert locked == [buyer.id]
    assert updated.quantity == 3
    assert updated.subtotal == Decimal("24.00")


def test_update_quantity_checks_stock_read_under_lock(db_session: Session, monkeypatch):
    buyer = _create_user(db_session, "restocked")
    product = _create_product(db_session, "Kettle", "30.00", 2)
    service = CartService(db_session)
    item, _ = service.add_to_cart(_principal(buyer), product.id, 1)
    product_id = product.id
    db_session.expire_all()

    original = UserRepository.get_for_update

    def sell_out_while_waiting(self, user_id):
        db_session.query(Product).filter(Product.id == product_id).update({"stock": 0})
        return original(self, user_id)

    monkeypatch.setattr(UserRepository, "get_for_update", sell_out_while_waiting)

    with pytest.raises(InsufficientStock):
        service.update_quantity(_principal(buyer), item.id, 2)

    db_session.expire_all()
    assert db_session.get(CartItem, item.id).quantity == 1


def test_update_someone_elses_line_is_forbidden(client: TestClient, db_session: Session):
    owner = _create_user(db_session, "lineowner")
    other = _create_user(db_session, "lineother")
    product = _create_product(db_session, "Pencil", "1.00", 10)
    item_id = client.post(
        "/api/cart", headers=_auth_headers(owner), json={"product_id": product.id, "quantity": 1}
    ).json()["data"]["id"]

    response = client.put(f"/api/cart/{item_id}", headers=_auth_headers(other), json={"quantity": 2})

    assert response.status_code == 403


def test_update_missing_line(client: TestClient, db_session: Session):
    buyer = _create_user(db_session, "ghostline")

    response = client.put("/api/cart/9999", headers=_auth_headers(buyer), json={"quantity": 2})

    assert response.status_code == 404


def test_get_single_cart_item(client: TestClient, db_session: Session):
    buyer = _create_user(db_session, "single")
    product = _create_product(db_session, "Mouse", "20.00", 10)
    headers = _auth_headers(buyer)
    item_id = client.post(
        "/api/cart", headers=headers, json={"product_id": product.id, "quantity": 2}
    ).json()["data"]["id"]

    response = client.get(f"/api/cart/item/{item_id}", headers=headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["product"]["name"] == "Mouse"
    assert data["subtotal"] == 40


def test_remove_line_then_retry_reports_not_found(client: TestClient, db_session: Session):
    buyer = _create_user(db_session, "remover")
    product = _create_product(db_session, "Bag", "30.00", 10)
    headers = _auth_headers(buyer)
    item_id = client.post(
        "/api/cart", headers=headers, json={"product_id": product.id, "quantity": 1}
    ).json()["data"]["id"]

    assert client.delete(f"/api/cart/{item_id}", headers=headers).status_code == 200
    assert client.delete(f"/api/cart/{item_id}", headers=headers).status_code == 404


def test_clear_cart_returns_deleted_count(client: TestClient, db_session: Session):
    buyer = _create_user(db_session, "clearer")
    seller = _create_user(db_session, "clearseller", role=UserRole.SELLER)
    headers = _auth_headers(buyer)
    for name in ("One", "Two", "Three"):
        product = _create_product(db_session, name, "1.00", 5, seller)
        client.post("/api/cart", headers=headers, json={"product_id": product.id, "quantity": 1})

    response = client.delete(f"/api/cart/user/{buyer.id}", headers=headers)
    assert response.status_code == 200
    assert response.json()["deleted_items"] == 3

    response = client.delete(f"/api/cart/user/{buyer.id}", headers=headers)
    assert response.json()["deleted_items"] == 0


@pytest.mark.parametrize(
    "steps",
    [
        [("add", 1), ("add", 2), ("update", 5)],
        [("add", 3), ("update", 1), ("add", 4)],
        [("add", 2), ("price", "19.99"), ("add", 1)],
        [("add", 6), ("price", "0.50"), ("update", 2), ("price", "1000.00")],
    ],
)
def test_subtotal_always_matches_price_times_quantity(db_session: Session, steps):
    buyer = _create_user(db_session, "invariant")
    seller = _create_user(db_session, "invseller", role=UserRole.SELLER)
    product = _create_product(db_session, "Gadget", "12.34", 100, seller)
    cart = CartService(db_session)
    catalog = ProductService(db_session)
    item = None

    for action, value in steps:
        if action == "add":
            item, _ = cart.add_to_cart(_principal(buyer), product.id, value)
        elif action == "update":
            item = cart.update_quantity(_principal(buyer), item.id, value)
        else:
            catalog.update_product(_principal(seller), product.id, {"price": Decimal(value)})

        db_session.expire_all()
        for line in db_session.query(CartItem).all():
            assert line.subtotal == line.product.price * line.quantity

    assert db_session.query(CartItem).count() == 1
