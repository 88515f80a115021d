"""
The fixed capability catalog.

Every capability is a named boolean permission. Values are the stable wire
names stored in role, group and override records and sent to clients, so
renaming or removing one is a breaking change. New members default to False
on every existing record until granted.
"""
from enum import Enum


class Capability(str, Enum):
    """
    Granular capabilities, grouped by resource domain.

    Naming convention: can{Action}{Resource}, with the graduated actions
    See (read), Modify (create), Edit (update) and Delete.
    """

    # User management
    SEE_USERS = "canSeeUsers"
    MODIFY_USERS = "canModifyUsers"
    EDIT_USERS = "canEditUsers"
    DELETE_USERS = "canDeleteUsers"

    # Projects
    SEE_PROJECTS = "canSeeProjects"
    MODIFY_PROJECTS = "canModifyProjects"
    EDIT_PROJECTS = "canEditProjects"
    DELETE_PROJECTS = "canDeleteProjects"
    SEE_ALL_PROJECTS = "canSeeAllProjects"
    MODIFY_ALL_PROJECTS = "canModifyAllProjects"
    EDIT_ALL_PROJECTS = "canEditAllProjects"
    DELETE_ALL_PROJECTS = "canDeleteAllProjects"

    # Tasks
    SEE_TASKS = "canSeeTasks"
    MODIFY_TASKS = "canModifyTasks"
    EDIT_TASKS = "canEditTasks"
    DELETE_TASKS = "canDeleteTasks"

    # Stakeholders
    SEE_STAKEHOLDERS = "canSeeStakeholders"
    MODIFY_STAKEHOLDERS = "canModifyStakeholders"
    EDIT_STAKEHOLDERS = "canEditStakeholders"
    DELETE_STAKEHOLDERS = "canDeleteStakeholders"

    # RAID logs
    SEE_RAID_LOGS = "canSeeRaidLogs"
    MODIFY_RAID_LOGS = "canModifyRaidLogs"
    EDIT_RAID_LOGS = "canEditRaidLogs"
    DELETE_RAID_LOGS = "canDeleteRaidLogs"

    # Communications
    SEE_COMMUNICATIONS = "canSeeCommunications"
    MODIFY_COMMUNICATIONS = "canModifyCommunications"
    EDIT_COMMUNICATIONS = "canEditCommunications"
    DELETE_COMMUNICATIONS = "canDeleteCommunications"

    # Surveys
    SEE_SURVEYS = "canSeeSurveys"
    MODIFY_SURVEYS = "canModifySurveys"
    EDIT_SURVEYS = "canEditSurveys"
    DELETE_SURVEYS = "canDeleteSurveys"

    # Mind maps
    SEE_MIND_MAPS = "canSeeMindMaps"
    MODIFY_MIND_MAPS = "canModifyMindMaps"
    EDIT_MIND_MAPS = "canEditMindMaps"
    DELETE_MIND_MAPS = "canDeleteMindMaps"

    # Process maps
    SEE_PROCESS_MAPS = "canSeeProcessMaps"
    MODIFY_PROCESS_MAPS = "canModifyProcessMaps"
    EDIT_PROCESS_MAPS = "canEditProcessMaps"
    DELETE_PROCESS_MAPS = "canDeleteProcessMaps"

    # Gantt charts
    SEE_GANTT_CHARTS = "canSeeGanttCharts"
    MODIFY_GANTT_CHARTS = "canModifyGanttCharts"
    EDIT_GANTT_CHARTS = "canEditGanttCharts"
    DELETE_GANTT_CHARTS = "canDeleteGanttCharts"

    # Checklist templates
    SEE_CHECKLIST_TEMPLATES = "canSeeChecklistTemplates"
    MODIFY_CHECKLIST_TEMPLATES = "canModifyChecklistTemplates"
    EDIT_CHECKLIST_TEMPLATES = "canEditChecklistTemplates"
    DELETE_CHECKLIST_TEMPLATES = "canDeleteChecklistTemplates"

    # Reports
    SEE_REPORTS = "canSeeReports"
    MODIFY_REPORTS = "canModifyReports"
    EDIT_REPORTS = "canEditReports"
    DELETE_REPORTS = "canDeleteReports"

    # Roles
    SEE_ROLES = "canSeeRoles"
    MODIFY_ROLES = "canModifyRoles"
    EDIT_ROLES = "canEditRoles"
    DELETE_ROLES = "canDeleteRoles"

    # Groups
    SEE_GROUPS = "canSeeGroups"
    MODIFY_GROUPS = "canModifyGroups"
    EDIT_GROUPS = "canEditGroups"
    DELETE_GROUPS = "canDeleteGroups"

    # Security settings (individual overrides)
    SEE_SECURITY_SETTINGS = "canSeeSecuritySettings"
    MODIFY_SECURITY_SETTINGS = "canModifySecuritySettings"
    EDIT_SECURITY_SETTINGS = "canEditSecuritySettings"
    DELETE_SECURITY_SETTINGS = "canDeleteSecuritySettings"

    # Email system
    SEND_EMAILS = "canSendEmails"
    SEND_BULK_EMAILS = "canSendBulkEmails"
    SEND_SYSTEM_EMAILS = "canSendSystemEmails"
    SEE_EMAIL_LOGS = "canSeeEmailLogs"
    MODIFY_EMAIL_TEMPLATES = "canModifyEmailTemplates"
    EDIT_EMAIL_SETTINGS = "canEditEmailSettings"

    # System administration
    SEE_SYSTEM_SETTINGS = "canSeeSystemSettings"
    MODIFY_SYSTEM_SETTINGS = "canModifySystemSettings"
    EDIT_SYSTEM_SETTINGS = "canEditSystemSettings"
    MANAGE_SYSTEM = "canManageSystem"


def _domain(*names: str) -> tuple[Capability, ...]:
    return tuple(Capability(name) for name in names)


def _crud(resource: str) -> tuple[Capability, ...]:
    return _domain(
        f"canSee{resource}", f"canModify{resource}", f"canEdit{resource}", f"canDelete{resource}"
    )


CAPABILITY_DOMAINS: dict[str, tuple[Capability, ...]] = {
    "users": _crud("Users"),
    "projects": _crud("Projects") + _crud("AllProjects"),
    "tasks": _crud("Tasks"),
    "stakeholders": _crud("Stakeholders"),
    "raid_logs": _crud("RaidLogs"),
    "communications": _crud("Communications"),
    "surveys": _crud("Surveys"),
    "mind_maps": _crud("MindMaps"),
    "process_maps": _crud("ProcessMaps"),
    "gantt_charts": _crud("GanttCharts"),
    "checklist_templates": _crud("ChecklistTemplates"),
    "reports": _crud("Reports"),
    "roles": _crud("Roles"),
    "groups": _crud("Groups"),
    "security_settings": _crud("SecuritySettings"),
    "email_system": _domain(
        "canSendEmails",
        "canSendBulkEmails",
        "canSendSystemEmails",
        "canSeeEmailLogs",
        "canModifyEmailTemplates",
        "canEditEmailSettings",
    ),
    "system_administration": _domain(
        "canSeeSystemSettings",
        "canModifySystemSettings",
        "canEditSystemSettings",
        "canManageSystem",
    ),
}

# Enumeration order; CapabilitySet serializes in this order
ALL_CAPABILITIES: tuple[Capability, ...] = tuple(Capability)

CAPABILITY_NAMES: frozenset[str] = frozenset(cap.value for cap in Capability)

