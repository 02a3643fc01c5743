"""
Seed Permissions Script
Populates the informational `permissions` table from the catalog.
Run with: python -m panel.scripts.seed_permissions

Resolution never reads this table; it exists for reporting and for the admin UI.
"""

import sys
from panel.config.permissions_config import PERMISSION_MATRIX
from panel.database.supabase_client import get_service_supabase
from supabase import Client
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def seed_permissions(supabase: Client, matrix: dict = PERMISSION_MATRIX) -> dict:
    """Insert missing permissions and refresh the descriptive columns of existing ones"""
    logger.info(f"Seeding permissions (catalog {matrix['version']})...")

    created_count = 0
    updated_count = 0
    failed = []

    existing = supabase.table("permissions").select("id, name").execute()
    existing_names = {p["name"] for p in (existing.data or [])}

    for perm in matrix["permissions"]:
        columns = {
            "category": perm["category"],
            "resource": perm["resource"],
            "action": perm["action"],
            "description": perm["description"]
        }
        try:
            if perm["name"] in existing_names:
                supabase.table("permissions")\
                    .update(columns)\
                    .eq("name", perm["name"])\
                    .execute()
                updated_count += 1
                logger.debug(f"Updated permission: {perm['name']}")
            else:
                supabase.table("permissions").insert({"name": perm["name"], **columns}).execute()
                created_count += 1
                logger.debug(f"Created permission: {perm['name']}")
        except Exception as e:
            logger.error(f"Error processing permission {perm['name']}: {e}")
            failed.append(perm["name"])

    # Names no longer in the catalog are reported, not deleted
    stale = sorted(existing_names - {p["name"] for p in matrix["permissions"]})
    if stale:
        logger.warning(f"Permissions in the table but not in the catalog: {', '.join(stale)}")

    logger.info(f"Permissions seeded: {created_count} created, {updated_count} updated, {len(failed)} failed")
    return {"created": created_count, "updated": updated_count, "failed": failed, "stale": stale}


def main():
    try:
        result = seed_permissions(get_service_supabase())
    except Exception as e:
        logger.error(f"Error during seeding: {e}")
        sys.exit(1)
    if result["failed"]:
        sys.exit(1)
    logger.info("Seeding completed successfully!")


if __name__ == "__main__":
    main()
