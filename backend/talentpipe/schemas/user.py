from typing import List, Optional

from pydantic import BaseModel, EmailStr

from talentpipe.core.roles import Role


class UserContext(BaseModel):
    user_id: Optional[int] = None
    email: EmailStr
    roles: List[Role]
    full_name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return Role.ADMIN in self.roles
