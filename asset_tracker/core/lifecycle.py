"""Shared asset/assignment status constants and audit action names."""

ASSET_TYPE_LAPTOP = "laptop"
ASSET_TYPE_MOUSE = "mouse"
ASSET_TYPE_KEYBOARD = "keyboard"
ASSET_TYPE_STAND = "stand"
ASSET_TYPE_OTHER = "other"

ASSET_TYPE_CHOICES = (
    ASSET_TYPE_LAPTOP,
    ASSET_TYPE_MOUSE,
    ASSET_TYPE_KEYBOARD,
    ASSET_TYPE_STAND,
    ASSET_TYPE_OTHER,
)

LAPTOP_SPEC_FIELDS = ("cpu", "ram", "storage", "os", "gpu")

# Asset.status
ASSET_ACTIVE = "active"
ASSET_ASSIGNED = "assigned"
ASSET_RETIRED = "retired"
ASSET_STATUS_CHOICES = (ASSET_ACTIVE, ASSET_ASSIGNED, ASSET_RETIRED)

# Assignment.status
ASSIGNMENT_ACTIVE = "active"
ASSIGNMENT_RETURNED = "returned"
ASSIGNMENT_RETIRED = "retired"
ASSIGNMENT_STATUS_CHOICES = (ASSIGNMENT_ACTIVE, ASSIGNMENT_RETURNED, ASSIGNMENT_RETIRED)

# Audit actions
CREATE_ASSET = "CREATE_ASSET"
UPDATE_ASSET = "UPDATE_ASSET"
ASSIGN_ASSET = "ASSIGN_ASSET"
RETURN_ASSET = "RETURN_ASSET"
RETIRE_ASSET = "RETIRE_ASSET"
UPDATE_RETURN_DETAILS = "UPDATE_RETURN_DETAILS"
AUDIT_ACTIONS = (
    CREATE_ASSET,
    UPDATE_ASSET,
    ASSIGN_ASSET,
    RETURN_ASSET,
    RETIRE_ASSET,
    UPDATE_RETURN_DETAILS,
)

ENTITY_ASSET = "asset"
ENTITY_ASSIGNMENT = "assignment"


def normalize_asset_type(value: str | None) -> str:
    """Return a lowercase asset type; empty input stays empty for validation."""

    return (value or "").strip().lower()


def parse_status_list(value: str | None, allowed: tuple[str, ...]) -> list[str]:
    """Split ``"returned,retired"`` style filters, dropping unknown values."""

    if not value:
        return []
    statuses: list[str] = []
    for part in value.split(","):
        status = part.strip().lower()
        if status in allowed and status not in statuses:
            statuses.append(status)
    return statuses
