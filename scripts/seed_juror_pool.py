import argparse
import os
import random
import sys

# Add project root to path
sys.path.append(os.getcwd())

from jurynow.config.loader import get_jury_settings
from jurynow.data.juror_manager import JurorManager
from jurynow.database import Base, SessionLocal, engine
import jurynow.models  # noqa: F401

REGIONS = ["North America", "South America", "Europe", "Africa", "Asia", "Oceania"]
AGE_GROUPS = ["18-24", "25-34", "35-44", "45-54", "55+"]


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed a demo juror pool.")
    parser.add_argument("--count", type=int, default=60, help="Jurors to create")
    parser.add_argument("--seed", type=int, default=7, help="Random seed for demographics")
    parser.add_argument(
        "--narrow-categories",
        action="store_true",
        help="Opt each juror into a random subset of categories instead of all",
    )
    return parser.parse_args()


def seed_pool(count: int, seed: int, narrow_categories: bool) -> None:
    Base.metadata.create_all(bind=engine)
    rng = random.Random(seed)
    categories = get_jury_settings()["categories"]
    db = SessionLocal()
    manager = JurorManager(db)
    try:
        for _ in range(count):
            chosen = (
                rng.sample(categories, k=rng.randint(1, len(categories)))
                if narrow_categories
                else list(categories)
            )
            juror = manager.register(
                demographics={
                    "region": rng.choice(REGIONS),
                    "age_group": rng.choice(AGE_GROUPS),
                },
                categories=chosen,
            )
            print(f"Created {juror.juror_id} {juror.demographics}")
    finally:
        db.close()
    print(f"Seeded {count} jurors.")


if __name__ == "__main__":
    args = _parse_args()
    seed_pool(args.count, args.seed, args.narrow_categories)
