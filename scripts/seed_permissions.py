"""
Seed script to populate the role/permission catalog.

Creates missing tables, then seeds:
- Default roles and permissions
- Role-permission assignments
- The bootstrap admin assignment, if no organization role exists yet

Safe to run repeatedly.

Usage:
    python -m scripts.seed_permissions [--admin-email EMAIL]
"""
import argparse
import asyncio
import sys

from app.core import config
from app.core.database.engine import AsyncSessionLocal, init_db
from app.features.permissions.catalog import PERMISSION_MATRIX, ROLE_NAMES
from app.features.permissions.exceptions import SeedingFailure
from app.features.permissions.seed import seed_rbac
from app.utils import get_logger


log = get_logger(__name__)


async def main(admin_email: str | None) -> int:
    """Seed roles, permissions and the bootstrap admin."""
    log.info("Initializing database tables...")
    await init_db()

    async with AsyncSessionLocal() as db:
        try:
            await seed_rbac(db, admin_email=admin_email)
        except SeedingFailure:
            log.error("Permission seeding failed")
            return 1

    log.info("Default roles:")
    for role_code, name in ROLE_NAMES.items():
        log.info(f"  - {role_code.value} ({name}): {len(PERMISSION_MATRIX[role_code])} permissions")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the RBAC catalog")
    parser.add_argument(
        "--admin-email",
        default=config.BOOTSTRAP_ADMIN_EMAIL,
        help="User that receives the bootstrap admin role (defaults to the oldest user)",
    )
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.admin_email)))
