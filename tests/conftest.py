"""
Global pytest configuration and fixtures for the Compliance Hub API test suite.
"""

import os
from typing import Any, Dict

# Set test environment variables before the app reads its settings
os.environ["JWT_SECRET"] = "test-secret-key-for-testing-only-32-chars"

import jwt  # noqa: E402
import pytest  # noqa: E402

# Import fixtures from fixture modules
from tests.fixtures.xero_fixtures import *  # noqa: F403, F401, E402


@pytest.fixture
def test_jwt_secret() -> str:
    """JWT secret for generating test tokens."""
    return "test-secret-key-for-testing-only-32-chars"


@pytest.fixture
def valid_jwt_payload() -> Dict[str, Any]:
    """Valid JWT payload for testing."""
    return {
        "sub": "test-user-id-123",
        "email": "test@example.com",
        "role": "user",
    }


@pytest.fixture
def admin_jwt_payload() -> Dict[str, Any]:
    return {
        "sub": "test-admin-id-456",
        "email": "admin@example.com",
        "role": "super_admin",
    }


@pytest.fixture
def valid_jwt_token(test_jwt_secret: str, valid_jwt_payload: Dict[str, Any]) -> str:
    """Generate a valid JWT token for testing."""
    return jwt.encode(valid_jwt_payload, test_jwt_secret, algorithm="HS256")


@pytest.fixture
def invalid_jwt_token() -> str:
    """Generate a JWT signed with the wrong secret."""
    return jwt.encode({"sub": "someone"}, "wrong-secret", algorithm="HS256")


@pytest.fixture
def auth_headers(valid_jwt_token: str) -> Dict[str, str]:
    """Generate authentication headers with valid JWT token."""
    return {"Authorization": f"Bearer {valid_jwt_token}"}


@pytest.fixture
def admin_auth_headers(
    test_jwt_secret: str, admin_jwt_payload: Dict[str, Any]
) -> Dict[str, str]:
    token = jwt.encode(admin_jwt_payload, test_jwt_secret, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}
