import uuid

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from models import Base, Product, UserProfile


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_profile(db):
    async def _make(role, **fields):
        fields.setdefault("full_name", f"Test {role.title()}")
        profile = UserProfile(user_id=uuid.uuid4(), role=role, **fields)
        db.add(profile)
        await db.commit()
        return profile

    return _make


@pytest.fixture
def make_product(db):
    async def _make(seller, name="Apples", price=100.0, stock=10, **fields):
        fields.setdefault("is_bulk", seller.role == "wholesaler")
        product = Product(seller_id=seller.id, name=name, price=price, stock=stock, **fields)
        db.add(product)
        await db.commit()
        return product

    return _make


@pytest.fixture
async def customer(make_profile):
    return await make_profile("customer", email="customer@example.com", location_lat=0.0, location_lng=0.0)


@pytest.fixture
async def retailer(make_profile):
    return await make_profile("retailer", business_name="Corner Store", location_lat=0.0, location_lng=0.0)


@pytest.fixture
async def wholesaler(make_profile):
    return await make_profile("wholesaler", business_name="Bulk Foods")
