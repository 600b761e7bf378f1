from enum import Enum
from typing import Iterable


class Role(str, Enum):
    ADMIN = "admin"
    HR_MANAGER = "hr_manager"
    EMPLOYEE = "employee"


ROLE_HIERARCHY = {
    Role.ADMIN: {Role.ADMIN, Role.HR_MANAGER, Role.EMPLOYEE},
    Role.HR_MANAGER: {Role.HR_MANAGER, Role.EMPLOYEE},
    Role.EMPLOYEE: {Role.EMPLOYEE},
}


def expand_roles(user_roles: Iterable[Role]) -> set[Role]:
    expanded: set[Role] = set()
    for role in user_roles:
        expanded |= ROLE_HIERARCHY[Role(role)]
    return expanded


def has_required_role(user_roles: Iterable[Role], required: Iterable[Role]) -> bool:
    required_set = {Role(r) for r in required}
    return bool(expand_roles(user_roles) & required_set)
