import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from starlette.concurrency import run_in_threadpool

from . import config
from . import repository
from .schemas import LoginRequest, ProfileUpdate, RegisterRequest, Role


router = APIRouter(prefix="/api/auth", tags=["Auth"])


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(' ', 1)
    if len(parts) != 2 or parts[0].lower() != 'bearer' or not parts[1].strip():
        return None
    return parts[1].strip()


async def get_current_user(authorization: Optional[str] = Header(None)) -> Dict:
    """Resolve the bearer token to the caller's profile (id, role, vat_rate, ...)."""
    token = _bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail='Access token required')
    user_id = await run_in_threadpool(repository.get_token_user_id, token)
    if not user_id:
        raise HTTPException(status_code=403, detail='Invalid or expired token')
    profile = await run_in_threadpool(repository.get_profile, user_id)
    if not profile:
        logging.warning('Authenticated user %s has no profile row', user_id)
        raise HTTPException(status_code=403, detail='Invalid or expired token')
    return profile


async def require_editor(user: Dict = Depends(get_current_user)) -> Dict:
    if user.get('role') == Role.VIEWER.value:
        raise HTTPException(status_code=403, detail='Edit access required')
    return user


@router.post('/register', status_code=201)
async def register(payload: RegisterRequest):
    try:
        existing = await run_in_threadpool(repository.get_profile_by_email, payload.email)
        if existing:
            raise HTTPException(status_code=400, detail='Email already registered')

        account = await run_in_threadpool(repository.sign_up, payload.email, payload.password)
        if not account:
            raise HTTPException(status_code=500, detail='Failed to register')

        profile = {
            'id': account['user_id'],
            'email': payload.email,
            'business_name': payload.business_name,
            'business_id': payload.business_id,
            'address': payload.address,
            'phone': payload.phone,
            'role': Role.USER.value,
            'logo': None,
            'vat_rate': config.DEFAULT_VAT_RATE,
        }
        created = await run_in_threadpool(repository.create_profile, profile)
        if not created:
            raise HTTPException(status_code=500, detail='Failed to register')
        logging.info('Registered business %s (%s)', payload.business_name, account['user_id'])
        return {"status": "success", "data": {'token': account['access_token'], 'user': created}}
    except HTTPException:
        raise
    except Exception as exc:
        logging.exception('register route exception: %s', exc)
        raise HTTPException(status_code=500, detail='Failed to register')


@router.post('/login')
async def login(payload: LoginRequest):
    session = await run_in_threadpool(repository.sign_in, payload.email, payload.password)
    if not session:
        raise HTTPException(status_code=401, detail='Invalid credentials')
    profile = await run_in_threadpool(repository.get_profile, session['user_id'])
    if not profile:
        raise HTTPException(status_code=401, detail='Invalid credentials')
    return {"status": "success", "data": {'token': session['access_token'], 'user': profile}}


@router.get('/me')
async def me(user: Dict = Depends(get_current_user)):
    return {"status": "success", "data": user}


@router.put('/profile')
async def update_profile(changes: ProfileUpdate, user: Dict = Depends(require_editor)):
    rec = changes.model_dump(exclude_unset=True)
    if not rec:
        raise HTTPException(status_code=400, detail='No changes provided')
    updated = await run_in_threadpool(repository.update_profile, user['id'], rec)
    if not updated:
        raise HTTPException(status_code=500, detail='Failed to update profile')
    return {"status": "success", "data": updated}
