from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from marketplace.core.security import create_access_token, hash_password
from marketplace.db.session import get_db
from marketplace.main import app
from marketplace.models.user import User, UserRole
from marketplace.services.cart_service import CartService


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


def _auth_headers(user: User) -> dict:
    token = create_access_token(data={"sub": str(user.id), "role": user.role.value})
    return {"Authorization": f"Bearer {token}"}


def test_unexpected_error_is_redacted(db_session: Session, monkeypatch):
    user = _create_user(db_session, "crasher")

    def explode(self, principal, user_id):
        raise OperationalError("SELECT secret FROM vault", {}, Exception("password=hunter2"))

    monkeypatch.setattr(CartService, "get_cart", explode)
    app.dependency_overrides[get_db] = lambda: db_session
    try:
        with TestClient(app, raise_server_exceptions=False) as client:
            response = client.get(f"/api/cart/{user.id}", headers=_auth_headers(user))
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    payload = response.json()
    assert payload["success"] is False
    assert payload["message"] == "Internal server error"
    assert payload["data"] is None
    assert "hunter2" not in response.text
    assert "vault" not in response.text


def test_validation_error_envelope(client: TestClient, db_session: Session):
    user = _create_user(db_session, "typo")

    response = client.post(
        "/api/cart",
        headers=_auth_headers(user),
        json={"product_id": "not-a-number", "quantity": 1},
    )

    assert response.status_code == 422
    payload = response.json()
    assert payload["success"] is False
    assert payload["message"] == "Validation failed"
    assert payload["errors"]
    assert payload["timestamp"].endswith("Z")


def test_business_error_envelope(client: TestClient, db_session: Session):
    user = _create_user(db_session, "notfound")

    response = client.get("/api/cart/item/12345", headers=_auth_headers(user))

    assert response.status_code == 404
    payload = response.json()
    assert payload == {
        "success": False,
        "message": "Cart item not found",
        "data": None,
        "errors": [{"code": "not_found"}],
        "timestamp": payload["timestamp"],
    }


def test_success_envelope_shape(client: TestClient, db_session: Session):
    user = _create_user(db_session, "shape")

    response = client.get(f"/api/cart/{user.id}", headers=_auth_headers(user))

    payload = response.json()
    assert payload["success"] is True
    assert payload["errors"] is None
    assert payload["data"] == []
    assert payload["total_items"] == 0
    assert payload["total_price"] == 0


def test_request_headers(client: TestClient):
    response = client.get("/health", headers={"X-Correlation-ID": "corr-123"})

    assert response.status_code == 200
    assert response.headers["X-Correlation-ID"] == "corr-123"
    assert response.headers["X-Request-ID"]
    assert float(response.headers["X-Process-Time"]) >= 0
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_fresh_ids_per_request(client: TestClient):
    first = client.get("/health")
    second = client.get("/api/products")

    assert first.headers["X-Correlation-ID"] != second.headers["X-Correlation-ID"]
    assert first.headers["X-Request-ID"] != second.headers["X-Request-ID"]
    assert second.headers["X-Request-ID"] != second.headers["X-Correlation-ID"]


def test_health_endpoints(client: TestClient):
    health = client.get("/health")
    assert health.json()["status"] == "healthy"

    database = client.get("/health/database")
    assert database.status_code == 200
    assert database.json()["status"] == "healthy"

    root = client.get("/")
    assert root.json()["docs"] == "/api/docs"
