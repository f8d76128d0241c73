"""Seed script to populate the monitored cinemas."""

import asyncio

from sqlalchemy import select

from cinewatch.database import AsyncSessionLocal
from cinewatch.models.cinema import Cinema
from cinewatch.scrapers.everyman import INACTIVE_VENUES, THEATER_IDS


def _everyman_venues() -> list[dict]:
    venues = []
    for cinema_id in THEATER_IDS:
        area = cinema_id.removeprefix("everyman-").replace("-", " ").title()
        venues.append(
            {
                "id": cinema_id,
                "name": f"Everyman {area}",
                "chain": "Everyman",
                "website": "https://www.everymancinema.com",
                "is_active": cinema_id not in INACTIVE_VENUES,
                "scraper_type": "everyman",
                "scraper_config": {"venue_id": cinema_id},
            }
        )
    return venues


def cinemas_data() -> list[dict]:
    return [
        {
            "id": "castle-cinema",
            "name": "The Castle Cinema",
            "chain": None,
            "website": "https://thecastlecinema.com",
            "scraper_type": "castle",
            "scraper_config": None,
        },
        {
            "id": "the-nickel",
            "name": "The Nickel",
            "chain": None,
            "website": "https://thenickel.co.uk",
            "scraper_type": "nickel",
            "scraper_config": None,
        },
        {
            "id": "rio-dalston",
            "name": "Rio Cinema",
            "chain": None,
            "website": "https://riocinema.org.uk",
            "scraper_type": "rio",
            "scraper_config": None,
        },
        *_everyman_venues(),
    ]


async def seed_cinemas() -> None:
    """Seed the database with the monitored cinemas."""
    async with AsyncSessionLocal() as session:
        for cinema_data in cinemas_data():
            # Check if cinema already exists
            query = select(Cinema).where(Cinema.id == cinema_data["id"])
            result = await session.execute(query)
            existing = result.scalar_one_or_none()

            if existing:
                print(f"Cinema {cinema_data['id']} already exists, skipping")
                continue

            session.add(Cinema(**cinema_data))
            print(f"Added cinema: {cinema_data['name']}")

        await session.commit()
        print("Cinema seeding complete")


if __name__ == "__main__":
    asyncio.run(seed_cinemas())
