# Import models here so Alembic can discover metadata.
from crewdesk.models.user import User  # noqa: F401
from crewdesk.models.auth_session import AuthSession  # noqa: F401

# Team management: roles and memberships
from crewdesk.models.role import Role  # noqa: F401
from crewdesk.models.team_membership import TeamMembership  # noqa: F401
