"""Script to create the initial admin user."""
import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from taskflow.config import settings
from taskflow.core.logging_setup import setup_logging
from taskflow.database import AsyncSessionLocal, close_db
from taskflow.services.bootstrap_service import ensure_default_admin


async def init_admin(email: str, password: str, name: str):
    """Create the admin user if it doesn't exist."""
    async with AsyncSessionLocal() as db:
        admin_user = await ensure_default_admin(db, email=email, password=password, name=name)
    await close_db()

    print("✓ Admin user ready")
    print("\n" + "=" * 50)
    print(f"  Email: {admin_user.email}")
    print(f"  Name:  {admin_user.name}")
    print("=" * 50)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--email", default=settings.DEFAULT_ADMIN_EMAIL)
    parser.add_argument("--password", default=settings.DEFAULT_ADMIN_PASSWORD)
    parser.add_argument("--name", default=settings.DEFAULT_ADMIN_NAME)
    args = parser.parse_args()

    setup_logging(fmt="text")
    asyncio.run(init_admin(args.email, args.password, args.name))
