"""Dependencies de autenticación para FastAPI"""
from typing import Dict

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from shared.auth.jwt_handler import decode_token

security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Dict:
    '''Usuario del token. El user_id de aquí es la única identidad que ven los servicios'''
    payload = decode_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Token inválido o expirado',
            headers={'WWW-Authenticate': 'Bearer'},
        )

    user_id = payload.get('sub') or payload.get('user_id')
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Token sin identificador de usuario',
        )

    return {
        'user_id': user_id,
        'email': payload.get('email'),
        'role': payload.get('role', 'user'),
    }


def require_roles(*roles: str):
    '''Dependency que exige alguno de los roles indicados'''

    async def checker(current_user: Dict = Depends(get_current_user)) -> Dict:
        if current_user.get('role') not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Acceso denegado. Requiere rol: {' o '.join(roles)}",
            )
        return current_user

    return checker


get_current_admin = require_roles('admin')

# Scanners de puerta; admin también puede validar
get_current_scanner = require_roles('scanner', 'admin')
