# access_control.py — Project-scoped authorization policy
# One evaluator decides every operation on a project and its descendants.
# Callers resolve the owning Project first and pass its membership snapshot;
# the evaluator never looks at boards, tasks or comments directly.
#
# Policy:
#   READ              owner, any member
#   WRITE_CONTENT     owner, any member (role is irrelevant)
#   ADMIN             owner, member with role "admin"
#   OWNER             owner only (project deletion)
#   COMMENT_MODERATE  owner, the comment's author, any member

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from errors import ForbiddenError
from models import Project, ProjectRole

logger = logging.getLogger("taskboard.access")


class Operation(str, Enum):
    READ = "read"
    WRITE_CONTENT = "write-content"
    ADMIN = "admin"
    OWNER = "owner"
    COMMENT_MODERATE = "comment-moderate"


class Decision(str, Enum):
    ALLOWED = "allowed"
    FORBIDDEN = "forbidden"


DENIAL_MESSAGES = {
    Operation.READ: "Access denied. You are not a member of this project.",
    Operation.WRITE_CONTENT: "Access denied. You are not a member of this project.",
    Operation.ADMIN: "Access denied. Only project owners and admins can perform this action.",
    Operation.OWNER: "Access denied. Only project owners can perform this action.",
    Operation.COMMENT_MODERATE: "Access denied. You cannot delete this comment.",
}


@dataclass(frozen=True)
class ProjectAccess:
    """Membership snapshot of one project, as read inside the current request"""
    project_id: str
    owner_id: str
    roles: Dict[str, ProjectRole] = field(default_factory=dict)

    @classmethod
    def of(cls, project: Project) -> "ProjectAccess":
        return cls(
            project_id=project.id,
            owner_id=project.owner_id,
            roles={m.user_id: ProjectRole(m.role) for m in project.members},
        )

    def is_owner(self, user_id: str) -> bool:
        return self.owner_id == user_id

    def role_of(self, user_id: str) -> Optional[ProjectRole]:
        return self.roles.get(user_id)


class AccessControlEvaluator:
    """Evaluates the project policy for a principal and an operation class"""

    def authorize(
        self,
        principal_id: str,
        access: ProjectAccess,
        operation: Operation,
        resource_author_id: Optional[str] = None,
    ) -> Decision:
        if access.is_owner(principal_id):
            return Decision.ALLOWED

        role = access.role_of(principal_id)

        if operation == Operation.OWNER:
            return Decision.FORBIDDEN
        if operation == Operation.ADMIN:
            return Decision.ALLOWED if role == ProjectRole.ADMIN else Decision.FORBIDDEN
        if operation == Operation.COMMENT_MODERATE:
            if resource_author_id is not None and resource_author_id == principal_id:
                return Decision.ALLOWED
            return Decision.ALLOWED if role is not None else Decision.FORBIDDEN

        # READ and WRITE_CONTENT
        return Decision.ALLOWED if role is not None else Decision.FORBIDDEN

    def require(
        self,
        principal_id: str,
        access: ProjectAccess,
        operation: Operation,
        resource_author_id: Optional[str] = None,
    ) -> None:
        """Raise ForbiddenError unless the principal may perform the operation"""
        decision = self.authorize(principal_id, access, operation, resource_author_id)
        if decision == Decision.FORBIDDEN:
            logger.warning(
                f"Denied {operation.value} on project {access.project_id} "
                f"for user {principal_id}"
            )
            raise ForbiddenError(DENIAL_MESSAGES[operation])
