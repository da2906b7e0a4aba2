"""Shared test fixtures for codescout."""

from __future__ import annotations

from pathlib import Path

import pytest

from codescout.search.ripgrep import WordMatch

from helpers import FakeSearcher


@pytest.fixture
def tmp_project(tmp_path: Path) -> Path:
    """Create a temporary project directory with sample Python files."""
    (tmp_path / "main.py").write_text('''"""Main application entry point."""

from utils import helper_function, calculate_total
from models import User, Order


def main():
    """Run the main application."""
    user = User("Alice", "alice@example.com")
    order = Order(user, items=["widget", "gadget"])
    total = calculate_total(order.items)
    result = helper_function(total)
    print(f"Order total: {result}")
    return result


if __name__ == "__main__":
    main()
''')

    (tmp_path / "utils.py").write_text('''"""Utility functions."""

TAX_RATE = 0.08


def helper_function(value):
    """Apply formatting to a value."""
    return f"${value:.2f}"


def calculate_total(items):
    """Calculate total price for a list of items."""
    prices = {"widget": 9.99, "gadget": 24.99, "doohickey": 4.99}
    subtotal = sum(prices.get(item, 0) for item in items)
    tax = subtotal * TAX_RATE
    return subtotal + tax
''')

    (tmp_path / "models.py").write_text('''"""Data models."""


class User:
    """Represents a user in the system."""

    def __init__(self, name: str, email: str):
        self.name = name
        self.email = email

    def display_name(self):
        """Get the display name."""
        return self.name.title()


class Order:
    """Represents an order."""

    def __init__(self, user: User, items: list):
        self.user = user
        self.items = items

    def get_total(self):
        """Get the order total."""
        from utils import calculate_total
        return calculate_total(self.items)
''')

    api_dir = tmp_path / "api"
    api_dir.mkdir()
    (api_dir / "__init__.py").write_text('"""API package."""\n')
    (api_dir / "auth.py").write_text('''"""Session authentication."""

import hashlib

SESSION_TTL = 3600


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode()).hexdigest()


def login(username: str, password: str) -> dict:
    """Validate credentials and open a session."""
    digest = hash_password(password)
    if not digest:
        raise ValueError("empty password")
    return {"user": username, "ttl": SESSION_TTL}


def logout(session: dict) -> None:
    session.clear()
''')
    (api_dir / "routes.py").write_text('''"""API routes."""

from api.auth import login
from models import User


def post_login(payload):
    """Login endpoint."""
    return login(payload["username"], payload["password"])


def get_user(user_id):
    return User("Test User", "test@example.com")
''')

    (tmp_path / "config.yaml").write_text("debug: true\nport: 8080\n")
    return tmp_path


@pytest.fixture
def fake_searcher() -> FakeSearcher:
    return FakeSearcher(
        counts={
            "login": {"api/auth.py": 3, "api/routes.py": 2},
            "session": {"api/auth.py": 2},
            "total": {"utils.py": 2, "main.py": 1, "models.py": 1},
        },
        words={
            "login": [
                WordMatch("api/auth.py", 12, 5),
                WordMatch("api/routes.py", 3, 22),
                WordMatch("api/routes.py", 9, 12),
            ],
        },
    )
