from fastapi import Depends, HTTPException, status

from app.auth.dependencies import get_current_user
from app.auth.models import RoleEnum


def require_role(*roles: RoleEnum):
    allowed = {role.value for role in roles}

    def wrapper(user=Depends(get_current_user)):
        if user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Accès interdit (rôle requis)"
            )
        return user
    return wrapper


require_admin = require_role(RoleEnum.ADMINISTRATEUR)
