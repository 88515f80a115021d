"""
Seed script to populate the default roles.

Run this script after database initialization to create:
- Admin: every capability
- Manager: create and manage projects and their artifacts, view reports
- User: basic project access for team collaboration, manages tasks

Roles that already exist (by name) are left untouched.

Usage:
    python -m scripts.seed_permissions
"""
import asyncio

from permission_engine.core.database.engine import AsyncSessionLocal, init_db
from permission_engine.features.capabilities import CAPABILITY_DOMAINS, Capability, CapabilitySet
from permission_engine.features.permissions.service import PermissionService
from permission_engine.features.permissions.sql_stores import sql_stores
from permission_engine.utils import get_logger


log = get_logger(__name__)


PROJECT_DOMAINS = (
    "projects",
    "tasks",
    "stakeholders",
    "raid_logs",
    "communications",
    "surveys",
    "mind_maps",
    "process_maps",
    "gantt_charts",
    "checklist_templates",
)


def _domain_actions(domains, *prefixes: str) -> list[Capability]:
    """Capabilities in `domains` whose name starts with one of `prefixes` (e.g. "canSee")."""
    return [
        cap
        for domain in domains
        for cap in CAPABILITY_DOMAINS[domain]
        if cap.value.startswith(prefixes)
    ]


DEFAULT_ROLES = {
    "Admin": {
        "description": "Full system access with all permissions",
        "capabilities": CapabilitySet.all(),
    },
    "Manager": {
        "description": "Can create and manage projects, view reports",
        "capabilities": CapabilitySet.grant(
            *_domain_actions(PROJECT_DOMAINS, "canSee", "canModify", "canEdit", "canDelete"),
            *_domain_actions(("reports",), "canSee", "canModify"),
            *_domain_actions(("users", "groups"), "canSee"),
            Capability.SEND_EMAILS,
        ),
    },
    "User": {
        "description": "Basic project access for team collaboration",
        "capabilities": CapabilitySet.grant(
            *_domain_actions(PROJECT_DOMAINS, "canSee"),
            *_domain_actions(("tasks",), "canModify", "canEdit", "canDelete"),
            *_domain_actions(("reports",), "canSee"),
        ),
    },
}


async def seed_roles(service: PermissionService) -> int:
    """
    Create any default role that does not exist yet.

    Returns:
        Number of roles created
    """
    log.info("Creating default roles...")
    existing = {role.name for role in await service.list_roles()}
    created = 0

    for role_name, role_config in DEFAULT_ROLES.items():
        if role_name in existing:
            log.debug(f"Role '{role_name}' already exists, skipping")
            continue
        capabilities = role_config["capabilities"]
        await service.create_role(role_name, capabilities, description=role_config["description"])
        log.info(f"Created role '{role_name}' with {len(capabilities.grants)} capabilities")
        created += 1

    return created


async def main():
    """Main function to seed roles."""
    log.info("Starting role seeding...")

    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()

    service = PermissionService(*sql_stores(AsyncSessionLocal))
    try:
        created = await seed_roles(service)
    except Exception as e:
        log.error(f"Error seeding roles: {e}", exc_info=True)
        raise

    log.info(f"Role seeding completed successfully! ({created} created)")
    log.info("")
    log.info("Default roles:")
    for role_name, role_config in DEFAULT_ROLES.items():
        log.info(f"  - {role_name}: {role_config['description']}")


if __name__ == "__main__":
    asyncio.run(main())
