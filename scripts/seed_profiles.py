"""Seed city coordinates and a handful of demo profiles."""
import asyncio
import sys
sys.path.insert(0, ".")

from sqlalchemy import select
from zimconnect.database import async_session_factory
from zimconnect.models.notification import CityCoordinate
from zimconnect.models.profile import Profile


CITY_COORDINATES = [
    {"state": "Florida", "city": "Miami", "latitude": 25.7617, "longitude": -80.1918},
    {"state": "Florida", "city": "Orlando", "latitude": 28.5383, "longitude": -81.3792},
    {"state": "Florida", "city": "Tampa", "latitude": 27.9506, "longitude": -82.4572},
    {"state": "Georgia", "city": "Atlanta", "latitude": 33.7490, "longitude": -84.3880},
    {"state": "Georgia", "city": "Savannah", "latitude": 32.0809, "longitude": -81.0912},
    {"state": "Texas", "city": "Austin", "latitude": 30.2672, "longitude": -97.7431},
    {"state": "Texas", "city": "Houston", "latitude": 29.7604, "longitude": -95.3698},
    {"state": "New York", "city": "New York", "latitude": 40.7128, "longitude": -74.0060},
]

DEMO_PROFILES = [
    {
        "id": "00000000-0000-4000-8000-000000000001",
        "first_name": "Tariro", "last_name": "Moyo", "age": 27, "gender": "woman",
        "city": "Atlanta", "state": "Georgia",
        "bio": "Weekend hiker, weekday coder.",
        "interests": ["hiking", "jazz", "cooking"],
    },
    {
        "id": "00000000-0000-4000-8000-000000000002",
        "first_name": "Tendai", "last_name": "Ncube", "age": 31, "gender": "man",
        "city": "Savannah", "state": "Georgia",
        "bio": "Amateur photographer and coffee snob.",
        "interests": ["photography", "coffee"],
    },
    {
        "id": "00000000-0000-4000-8000-000000000003",
        "first_name": "Rudo", "last_name": "Chikwanha", "age": 24, "gender": "woman",
        "city": "Miami", "state": "Florida",
        "bio": "Salsa on Fridays.", "interests": ["dancing", "travel"],
        "show_age": False,
    },
    {
        "id": "00000000-0000-4000-8000-000000000004",
        "first_name": "Farai", "last_name": "Dube", "age": 35, "gender": "man",
        "city": "Austin", "state": "Texas",
        "bio": "Live music, BBQ, and long runs.", "interests": ["music", "running"],
        "show_location": False,
    },
]


async def seed():
    async with async_session_factory() as session:
        for c in CITY_COORDINATES:
            existing = await session.execute(
                select(CityCoordinate)
                .where(CityCoordinate.state == c["state"])
                .where(CityCoordinate.city == c["city"])
            )
            if existing.scalar_one_or_none() is None:
                session.add(CityCoordinate(**c))
                print(f"  Seeded city {c['city']}, {c['state']}")

        for p in DEMO_PROFILES:
            existing = await session.execute(select(Profile).where(Profile.id == p["id"]))
            if existing.scalar_one_or_none() is not None:
                print(f"  Profile {p['first_name']} already exists, skipping.")
                continue
            profile = Profile(
                **p,
                photos=[f"https://picsum.photos/seed/{p['first_name'].lower()}/600/800"],
            )
            profile.profile_complete = profile.compute_complete()
            session.add(profile)
            print(f"  Seeded profile {profile.full_name} (complete={profile.profile_complete})")
        await session.commit()
    print("Done seeding profiles.")


if __name__ == "__main__":
    asyncio.run(seed())
