from pydantic import BaseModel, ConfigDict

ADMIN_ROLES = frozenset({"head_admin", "manager"})
# role that receives admin-side notifications
ADMIN_NOTIFICATION_ROLE = "head_admin"


class AuthContext(BaseModel):
    """Caller identity decoded from the bearer token, trusted verbatim"""
    model_config = ConfigDict(frozen=True)

    user_id: int
    role: str
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES
