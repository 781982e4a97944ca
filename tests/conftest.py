import numpy as np
import pandas as pd
import pytest

from carmarket.data.preprocess import preprocess_listings

BRANDS = [f"Brand{i:02d}" for i in range(30)]
ORIGINS = ["Domestic", "Imported"]
CONDITIONS = ["Used", "New"]
TRANSMISSIONS = ["Automatic", "Manual"]
DRIVES = ["FWD", "RWD", "AWD", "4WD"]
COLORS = ["White", "Black", "Silver", "Red", "Blue", "Grey", "Brown", "Gold",
          "Green", "Orange", "Yellow", "Beige"]


def format_price(value_million: float) -> str:
    billions, millions = divmod(int(round(value_million)), 1000)
    if billions == 0:
        return f"{millions} Million"
    if millions == 0:
        return f"{billions} Billion" if billions == 1 else f"{billions} Billions"
    if billions == 1:
        return f"Billion {millions} Million"
    return f"{billions} Billion {millions} Million"


def make_raw_listings(n: int = 600, seed: int = 0) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    brand_p = np.linspace(3, 1, len(BRANDS))
    brand = rng.choice(BRANDS, size=n, p=brand_p / brand_p.sum())
    year = rng.integers(2005, 2024, size=n)
    origin = rng.choice(ORIGINS, size=n, p=[0.6, 0.4])
    condition = np.where(year >= 2022, "New", "Used")
    mileage = np.where(condition == "New", rng.integers(1, 50, size=n),
                       (2024 - year) * rng.integers(8_000, 20_000, size=n))
    seats = rng.choice([4, 5, 7, 16], size=n, p=[0.2, 0.5, 0.25, 0.05])
    doors = np.where(seats == 16, 4, rng.choice([2, 4, 5], size=n, p=[0.1, 0.6, 0.3]))

    price = 300 + (year - 2005) * 60 + np.where(origin == "Imported", 700, 0) + rng.normal(0, 80, size=n)
    price = np.clip(price, 120, None)

    return pd.DataFrame({
        "ad_id": np.arange(n),
        "url": [f"https://example.com/listing/{i}" for i in range(n)],
        "price": [format_price(p) for p in price],
        "brand": brand,
        "grade": [f"{b}-G{g}" for b, g in zip(brand, rng.integers(0, 3, size=n))],
        "car_name": [f"{b} {y}" for b, y in zip(brand, year)],
        "car_model": [f"{b}-M{m}" for b, m in zip(brand, rng.integers(0, 2, size=n))],
        "engine": rng.choice(["Petrol 1.5 L", "Petrol 2.0 L", "Diesel 2.2 L", "Hybrid 1.8 L"], size=n),
        "transmission": rng.choice(TRANSMISSIONS, size=n, p=[0.75, 0.25]),
        "drive_type": rng.choice(DRIVES, size=n, p=[0.5, 0.2, 0.2, 0.1]),
        "year": year,
        "mileage": [f"{m:,} km" for m in mileage],
        "num_of_doors": [f"{d} doors" for d in doors],
        "seating_capacity": [f"{s} seats" for s in seats],
        "exterior_color": rng.choice(COLORS, size=n),
        "interior_color": rng.choice(COLORS[:6], size=n),
        "condition": condition,
        "origin": origin,
        "fuel_system": "Injection",
        "fuel_consumption": "7 L/100km",
        "describe": "Well kept, one owner",
    })


@pytest.fixture
def raw_listings():
    return make_raw_listings()


@pytest.fixture
def clean_listings(raw_listings):
    return preprocess_listings(raw_listings)
