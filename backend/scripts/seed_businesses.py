from __future__ import annotations

import sys
from pathlib import Path

from sqlalchemy import select

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from discovery.database import SessionLocal
from discovery.models import Business, Review, Service
from discovery.services.rating_service import recompute_ratings

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]
ALL_DAYS = WEEKDAYS + ["sunday"]

BUSINESSES = [
    {
        "name": "Glow Studio",
        "type": "salon",
        "category": "Hair Salon",
        "branch": "Bandra West",
        "area": "Bandra",
        "city": "Mumbai",
        "state": "Maharashtra",
        "zip_code": "400050",
        "address": "14 Hill Road, Bandra West",
        "lat": 19.0544,
        "lng": 72.8402,
        "tags": ["unisex", "hair", "keratin"],
        "amenities": ["wifi", "parking", "air conditioning"],
        "description": "Neighbourhood salon for cuts, colour and keratin treatments.",
        "hours": {"open": "10:00", "close": "21:00", "days": ALL_DAYS},
        "business_link": "glow-studio-bandra",
        "offers": [{"title": "20% off weekday colour"}],
        "services": [
            ("Haircut", 600.0, 45, []),
            ("Global Hair Colour", 2800.0, 120, [{"price": 2500, "duration": 110, "isActive": True}]),
            ("Keratin Treatment", 4500.0, 150, []),
        ],
        "reviews": [5, 5, 4, 5, 4],
    },
    {
        "name": "Serenity Day Spa",
        "type": "spa",
        "category": "Day Spa",
        "branch": "Koregaon Park",
        "area": "Koregaon Park",
        "city": "Pune",
        "state": "Maharashtra",
        "zip_code": "411001",
        "address": "Lane 6, North Main Road",
        "lat": 18.5362,
        "lng": 73.8940,
        "tags": ["women", "massage", "ayurvedic"],
        "amenities": ["shower", "parking", "wifi"],
        "description": "Ayurvedic massages, body scrubs and couples rituals in a quiet garden setting.",
        "hours": {"open": "09:00", "close": "20:00", "days": ALL_DAYS},
        "business_link": "serenity-day-spa-pune",
        "offers": [],
        "services": [
            ("Swedish Massage", 2200.0, 60, []),
            ("Abhyanga Massage", 2600.0, 75, []),
            ("Body Scrub", 1800.0, 45, []),
        ],
        "reviews": [5, 5, 5, 4],
    },
    {
        "name": "The Barber Room",
        "type": "salon",
        "category": "Barber Shop",
        "branch": "Indiranagar",
        "area": "Indiranagar",
        "city": "Bengaluru",
        "state": "Karnataka",
        "zip_code": "560038",
        "address": "100 Feet Road, HAL 2nd Stage",
        "lat": 12.9719,
        "lng": 77.6412,
        "tags": ["men", "beard", "grooming"],
        "amenities": ["wifi", "card payment"],
        "description": "Classic barbering with hot towel shaves and beard sculpting.",
        "hours": {"open": "11:00", "close": "22:00", "days": WEEKDAYS},
        "business_link": "the-barber-room-indiranagar",
        "offers": [{"title": "Free beard trim with haircut"}],
        "services": [
            ("Men's Haircut", 450.0, 30, []),
            ("Hot Towel Shave", 350.0, 30, []),
            ("Beard Sculpting", 300.0, 20, []),
        ],
        "reviews": [4, 4, 5, 3],
    },
    {
        "name": "Lotus Beauty Lounge",
        "type": "beauty",
        "category": "Beauty Parlour",
        "branch": "Hauz Khas",
        "area": "Hauz Khas",
        "city": "New Delhi",
        "state": "Delhi",
        "zip_code": "110016",
        "address": "Hauz Khas Village, Block 22",
        "lat": 28.5535,
        "lng": 77.1946,
        "tags": ["women", "bridal", "makeup"],
        "amenities": ["parking", "air conditioning"],
        "description": "Bridal makeup, threading and facials by senior artists.",
        "hours": {"open": "10:00", "close": "20:00", "days": ALL_DAYS},
        "business_link": "lotus-beauty-lounge-hauz-khas",
        "offers": [],
        "services": [
            ("Bridal Makeup", 15000.0, 180, []),
            ("Eyebrow Threading", 80.0, 15, []),
            ("Gold Facial", 1500.0, 60, []),
        ],
        "reviews": [5, 4, 4],
    },
    {
        "name": "Aqua Nail Bar",
        "type": "salon",
        "category": "Nail Salon",
        "branch": "Anna Nagar",
        "area": "Anna Nagar",
        "city": "Chennai",
        "state": "Tamil Nadu",
        "zip_code": "600040",
        "address": "2nd Avenue, Anna Nagar",
        "lat": 13.0850,
        "lng": 80.2101,
        "tags": ["unisex", "nails"],
        "amenities": ["wifi"],
        "description": "",
        "hours": {"open": "00:00", "close": "00:00", "days": ALL_DAYS},
        "business_link": "aqua-nail-bar-anna-nagar",
        "offers": [],
        "services": [
            ("Gel Manicure", 900.0, 45, []),
            ("Pedicure", 700.0, 40, []),
        ],
        "reviews": [3, 4],
    },
]


def main() -> None:
    session = SessionLocal()
    try:
        for item in BUSINESSES:
            business = session.scalar(select(Business).where(Business.business_link == item["business_link"]))
            if business is None:
                business = Business(business_link=item["business_link"], slug=item["business_link"])
                session.add(business)

            business.name = item["name"]
            business.type = item["type"]
            business.category = item["category"]
            business.branch = item["branch"]
            business.area = item["area"]
            business.city = item["city"]
            business.state = item["state"]
            business.country = "India"
            business.zip_code = item["zip_code"]
            business.address = item["address"]
            business.latitude = item["lat"]
            business.longitude = item["lng"]
            business.tags = item["tags"]
            business.amenities = item["amenities"]
            business.description = item["description"]
            business.working_hours = item["hours"]
            business.offers = item["offers"]
            business.is_active = True
            business.is_active_from_super_admin = True
            business.allow_online_booking = True

            business.services = [
                Service(
                    name=name,
                    price=price,
                    duration=duration,
                    pricing_options=options,
                    display_order=position,
                )
                for position, (name, price, duration, options) in enumerate(item["services"])
            ]
            business.reviews = [Review(rating=rating) for rating in item["reviews"]]
            session.flush()
            recompute_ratings(session, business.id)

        session.commit()
        print(f"Seeded businesses: {len(BUSINESSES)}")
    finally:
        session.close()


if __name__ == "__main__":
    main()
