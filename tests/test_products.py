from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from marketplace.core.security import create_access_token, hash_password
from marketplace.models.cart import CartItem
from marketplace.models.order import Order
from marketplace.models.product import Product
from marketplace.models.transaction import Transaction, TransactionKind
from marketplace.models.user import User, UserRole


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


def _create_product(
    db: Session,
    seller: User,
    name: str,
    price: str = "100.00",
    stock: int = 10,
    **fields,
) -> Product:
    product = Product(seller_id=seller.id, name=name, price=Decimal(price), stock=stock, **fields)
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


def _auth_headers(user: User) -> dict:
    token = create_access_token(data={"sub": str(user.id), "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


def test_seller_creates_product(client: TestClient, db_session: Session):
    seller = _create_user(db_session, "maker", role=UserRole.SELLER)

    response = client.post(
        "/api/products",
        headers=_auth_headers(seller),
        json={"name": "Desk", "price": "2500.50", "stock": 4, "category": "furniture"},
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["seller_id"] == seller.id
    assert data["price"] == 2500.5
    assert data["stock"] == 4
    assert data["is_active"] is True


def test_buyer_cannot_create_product(client: TestClient, db_session: Session):
    buyer = _create_user(db_session, "shopper")

    response = client.post(
        "/api/products",
        headers=_auth_headers(buyer),
        json={"name": "Desk", "price": "10", "stock": 1},
    )

    assert response.status_code == 403


def test_negative_stock_rejected(client: TestClient, db_session: Session):
    seller = _create_user(db_session, "negseller", role=UserRole.SELLER)

    response = client.post(
        "/api/products",
        headers=_auth_headers(seller),
        json={"name": "Broken", "price": "10", "stock": -1},
    )

    assert response.status_code == 422


def test_list_products_hides_inactive_and_filters_category(client: TestClient, db_session: Session):
    seller = _create_user(db_session, "lister", role=UserRole.SELLER)
    _create_product(db_session, seller, "Chair", category="furniture")
    _create_product(db_session, seller, "Mug", category="kitchen")
    _create_product(db_session, seller, "Hidden", category="furniture", is_active=False)

    response = client.get("/api/products")
    assert response.status_code == 200
    names = [p["name"] for p in response.json()["data"]]
    assert sorted(names) == ["Chair", "Mug"]

    response = client.get("/api/products", params={"category": "furniture"})
    assert [p["name"] for p in response.json()["data"]] == ["Chair"]

    response = client.get("/api/products/category/kitchen")
    assert [p["name"] for p in response.json()["data"]] == ["Mug"]


def test_search_is_case_insensitive_and_ranked_by_rating(client: TestClient, db_session: Session):
    seller = _create_user(db_session, "searcher", role=UserRole.SELLER)
    _create_product(db_session, seller, "Oak Table", rating=3.5)
    _create_product(db_session, seller, "Lamp", description="fits any TABLE", rating=4.8)
    _create_product(db_session, seller, "Sofa", rating=5.0)

    response = client.get("/api/products/search/table")

    assert response.status_code == 200
    assert [p["name"] for p in response.json()["data"]] == ["Lamp", "Oak Table"]

    response = client.get("/api/products", params={"search": "OAK"})
    assert [p["name"] for p in response.json()["data"]] == ["Oak Table"]


def test_get_product_includes_seller(client: TestClient, db_session: Session):
    seller = _create_user(db_session, "detailer", role=UserRole.SELLER)
    product = _create_product(db_session, seller, "Vase")

    response = client.get(f"/api/products/{product.id}")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["seller"]["username"] == "detailer"
    assert "password_hash" not in data["seller"]


def test_get_missing_product(client: TestClient):
    response = client.get("/api/products/9999")

    assert response.status_code == 404
    assert response.json()["message"] == "Product not found"


def test_products_by_seller_and_mine(client: TestClient, db_session: Session):
    seller = _create_user(db_session, "catalog", role=UserRole.SELLER)
    other = _create_user(db_session, "othercatalog", role=UserRole.SELLER)
    _create_product(db_session, seller, "Pen")
    _create_product(db_session, other, "Ink")

    response = client.get(f"/api/products/seller/{seller.id}")
    assert [p["name"] for p in response.json()["data"]] == ["Pen"]

    response = client.get("/api/products/mine", headers=_auth_headers(other))
    assert [p["name"] for p in response.json()["data"]] == ["Ink"]

    response = client.get("/api/products/seller/9999")
    assert response.status_code == 404


def test_only_owner_updates_product(client: TestClient, db_session: Session):
    owner = _create_user(db_session, "realowner", role=UserRole.SELLER)
    intruder = _create_user(db_session, "intruder", role=UserRole.SELLER)
    product = _create_product(db_session, owner, "Clock")

    response = client.put(
        f"/api/products/{product.id}",
        headers=_auth_headers(intruder),
        json={"stock": 1},
    )
    assert response.status_code == 403

    response = client.put(
        f"/api/products/{product.id}",
        headers=_auth_headers(owner),
        json={"stock": 25, "name": "Wall Clock"},
    )
    assert response.status_code == 200
    assert response.json()["data"]["stock"] == 25
    assert response.json()["data"]["name"] == "Wall Clock"


def test_admin_can_update_any_product(client: TestClient, db_session: Session):
    owner = _create_user(db_session, "ownedby", role=UserRole.SELLER)
    admin = _create_user(db_session, "moderator", role=UserRole.ADMIN)
    product = _create_product(db_session, owner, "Kettle")

    response = client.put(
        f"/api/products/{product.id}",
        headers=_auth_headers(admin),
        json={"description": "Moderated"},
    )

    assert response.status_code == 200
    assert response.json()["data"]["description"] == "Moderated"


def test_deactivate_and_activate_product(client: TestClient, db_session: Session):
    owner = _create_user(db_session, "toggler", role=UserRole.SELLER)
    product = _create_product(db_session, owner, "Fan")

    response = client.patch(f"/api/products/{product.id}/deactivate", headers=_auth_headers(owner))
    assert response.status_code == 200
    assert client.get("/api/products").json()["data"] == []

    response = client.patch(f"/api/products/{product.id}/activate", headers=_auth_headers(owner))
    assert response.status_code == 200
    assert len(client.get("/api/products").json()["data"]) == 1


def test_delete_product_removes_cart_lines_and_detaches_line_transactions(
    client: TestClient, db_session: Session
):
    owner = _create_user(db_session, "retiring", role=UserRole.SELLER)
    buyer = _create_user(db_session, "holdsline")
    product = _create_product(db_session, owner, "Retired")
    db_session.add(CartItem(user_id=buyer.id, product_id=product.id, quantity=2, subtotal=Decimal("200.00")))
    order = Order(
        order_number="ORD-1-AAAAA",
        user_id=buyer.id,
        total_price=Decimal("100.00"),
        shipping_address="1 Road",
    )
    db_session.add(order)
    db_session.flush()
    db_session.add(
        Transaction(
            kind=TransactionKind.LINE,
            user_id=buyer.id,
            order_id=order.id,
            product_id=product.id,
            quantity=1,
            price=Decimal("100.00"),
        )
    )
    db_session.commit()
    product_id = product.id

    response = client.delete(f"/api/products/{product_id}", headers=_auth_headers(owner))

    assert response.status_code == 200
    db_session.expire_all()
    assert db_session.query(Product).filter(Product.id == product_id).first() is None
    assert db_session.query(CartItem).filter(CartItem.product_id == product_id).count() == 0
    line = db_session.query(Transaction).filter(Transaction.order_id == order.id).one()
    assert line.product_id is None
    assert line.quantity == 1


def test_product_stats_admin_only(client: TestClient, db_session: Session):
    seller = _create_user(db_session, "statseller", role=UserRole.SELLER)
    admin = _create_user(db_session, "statadmin", role=UserRole.ADMIN)
    _create_product(db_session, seller, "A", stock=3)
    _create_product(db_session, seller, "B", stock=7, is_active=False)

    response = client.get("/api/products/stats", headers=_auth_headers(seller))
    assert response.status_code == 403

    response = client.get("/api/products/stats", headers=_auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["data"] == {"total_products": 2, "total_active": 1, "total_stock": 10}
