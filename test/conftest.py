import os

# Must be set before orderdesk.settings is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = ""
os.environ["WHATSAPP_ACCESS_TOKEN"] = ""
os.environ["WHATSAPP_PHONE_NUMBER_ID"] = ""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from orderdesk import models
from orderdesk.db import get_session
from orderdesk.main import app
from orderdesk.order_service import place_order
from orderdesk.settings import settings


@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session):
    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(name="catalog")
def catalog_fixture(session) -> dict:
    """
    One restaurant with two menus:

    Mains (no category tax): Margherita 10.00, Burger 8.00 (+Large 2.00,
    Cheese 1.50, Bacon 1.50), Pasta 25.00, Seasonal (unavailable).
    Drinks (5% category tax): Lemonade 4.00.
    """
    restaurant = models.Restaurant(name="Luigi's", slug="luigis")
    other = models.Restaurant(name="Other Place", slug="other")
    session.add(restaurant)
    session.add(other)
    session.commit()

    session.add(models.RestaurantSettings(
        restaurant_id=restaurant.id,
        pickup_enabled=True,
        delivery_enabled=True,
        delivery_charge=Decimal("3.00"),
        tax_included_in_price=True,
    ))

    mains = models.Menu(restaurant_id=restaurant.id, name="Mains")
    drinks = models.Menu(restaurant_id=restaurant.id, name="Drinks", tax_rate=Decimal("5"))
    other_menu = models.Menu(restaurant_id=other.id, name="Elsewhere")
    session.add_all([mains, drinks, other_menu])
    session.commit()

    margherita = models.MenuItem(menu_id=mains.id, name="Margherita", price=Decimal("10.00"))
    burger = models.MenuItem(menu_id=mains.id, name="Burger", price=Decimal("8.00"))
    pasta = models.MenuItem(menu_id=mains.id, name="Pasta", price=Decimal("25.00"))
    seasonal = models.MenuItem(menu_id=mains.id, name="Seasonal", price=Decimal("12.00"), is_available=False)
    lemonade = models.MenuItem(menu_id=drinks.id, name="Lemonade", price=Decimal("4.00"))
    foreign = models.MenuItem(menu_id=other_menu.id, name="Foreign Dish", price=Decimal("9.00"))
    session.add_all([margherita, burger, pasta, seasonal, lemonade, foreign])
    session.commit()

    large = models.MenuItemVariation(menu_item_id=burger.id, name="Large", price_adjustment=Decimal("2.00"))
    cheese = models.MenuItemAddon(menu_item_id=burger.id, name="Cheese", price=Decimal("1.50"))
    bacon = models.MenuItemAddon(menu_item_id=burger.id, name="Bacon", price=Decimal("1.50"))
    truffle = models.MenuItemAddon(menu_item_id=burger.id, name="Truffle", price=Decimal("6.00"), is_available=False)
    session.add_all([large, cheese, bacon, truffle])

    table = models.DiningTable(restaurant_id=restaurant.id, name_or_number="T1", capacity=4)
    session.add(table)
    session.commit()

    return {
        "restaurant_id": restaurant.id,
        "other_restaurant_id": other.id,
        "mains_id": mains.id,
        "drinks_id": drinks.id,
        "margherita": margherita.id,
        "burger": burger.id,
        "pasta": pasta.id,
        "seasonal": seasonal.id,
        "lemonade": lemonade.id,
        "foreign": foreign.id,
        "large": large.id,
        "cheese": cheese.id,
        "bacon": bacon.id,
        "truffle": truffle.id,
        "table_id": table.id,
    }


@pytest.fixture(name="restaurant_settings")
def restaurant_settings_fixture(session, catalog) -> models.RestaurantSettings:
    return session.exec(
        select(models.RestaurantSettings)
        .where(models.RestaurantSettings.restaurant_id == catalog["restaurant_id"])
    ).one()


def staff_token(restaurant_id: int, email: str = "staff@luigis.test") -> str:
    return jwt.encode(
        {"sub": email, "restaurant_id": restaurant_id},
        settings.secret_key,
        algorithm=settings.algorithm,
    )


@pytest.fixture(name="auth_headers")
def auth_headers_fixture(catalog) -> dict:
    return {"Authorization": f"Bearer {staff_token(catalog['restaurant_id'])}"}


@pytest.fixture(name="token_for")
def token_for_fixture():
    return staff_token


@pytest.fixture(name="new_order")
def new_order_fixture(session, catalog) -> str:
    """A pickup order for two Margheritas, still in status new"""
    placed = place_order(session, catalog["restaurant_id"], models.OrderCreate(
        items=[models.CartLine(menu_item_id=catalog["margherita"], quantity=2)],
        customer_name="Ada",
        customer_phone="+1 (555) 010-2000",
    ))
    return placed.order_id
