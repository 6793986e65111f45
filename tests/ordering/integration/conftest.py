import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from ordering.api.auth import issue_token
from ordering.api.errors import register_error_handlers
from ordering.api.routes import cart_router, order_router, webhook_router
from protean.integrations.fastapi import register_exception_handlers


@pytest.fixture()
def client():
    app = FastAPI()
    app.include_router(cart_router)
    app.include_router(order_router)
    app.include_router(webhook_router)
    register_exception_handlers(app)
    register_error_handlers(app)
    return TestClient(app)


@pytest.fixture()
def auth_headers():
    return {"Authorization": f"Bearer {issue_token('user-001')}"}


@pytest.fixture()
def other_user_headers():
    return {"Authorization": f"Bearer {issue_token('user-002')}"}
