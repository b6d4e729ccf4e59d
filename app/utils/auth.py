"""Authentication utilities and decorators"""
import base64
import time
import requests
from datetime import datetime, timezone
from functools import wraps
from flask import request, jsonify, current_app
import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.backends import default_backend
from app import db
from app.errors import AuthenticationError, AuthorizationError

JWKS_CACHE_SECONDS = 600

_jwks_cache = {}

def get_jwks(url):
    """Fetch the auth provider's signing keys, cached for a few minutes"""
    cached = _jwks_cache.get(url)
    if cached and time.monotonic() - cached[0] < JWKS_CACHE_SECONDS:
        return cached[1]

    try:
        response = requests.get(url, timeout=5)
        response.raise_for_status()
        keys = response.json()
    except (requests.RequestException, ValueError) as e:
        current_app.logger.error(f"Error fetching JWKS from {url}: {e}")
        raise AuthenticationError('Unable to verify session')

    _jwks_cache[url] = (time.monotonic(), keys)
    return keys

def get_public_key_from_jwk(jwk_data):
    """Convert JWK to PEM format for PyJWT"""
    n = base64.urlsafe_b64decode(jwk_data['n'] + '==')
    e = base64.urlsafe_b64decode(jwk_data['e'] + '==')

    # Convert bytes to integers
    n_int = int.from_bytes(n, 'big')
    e_int = int.from_bytes(e, 'big')

    # Create RSA public key
    public_key = rsa.RSAPublicNumbers(e_int, n_int).public_key(default_backend())

    # Serialize to PEM
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    )

def _signing_key(token):
    try:
        header = jwt.get_unverified_header(token)
    except jwt.InvalidTokenError:
        raise AuthenticationError('Invalid token')

    algorithm = header.get('alg')
    if algorithm == 'HS256':
        secret = current_app.config.get('AUTH_JWT_SECRET')
        if not secret:
            current_app.logger.error("AUTH_JWT_SECRET not configured")
            raise AuthenticationError('Unable to verify session')
        return secret, algorithm

    if algorithm != 'RS256':
        raise AuthenticationError('Invalid token')

    jwks_url = current_app.config.get('AUTH_JWKS_URL')
    if not jwks_url:
        current_app.logger.error("AUTH_JWKS_URL not configured")
        raise AuthenticationError('Unable to verify session')

    kid = header.get('kid')
    for key_data in get_jwks(jwks_url).get('keys', []):
        if key_data.get('kid') == kid:
            return get_public_key_from_jwk(key_data), algorithm

    current_app.logger.error(f"Key with kid '{kid}' not found in JWKS")
    raise AuthenticationError('Invalid token')

def verify_token(token):
    """Verify a bearer token and return its claims"""
    key, algorithm = _signing_key(token)
    audience = current_app.config.get('AUTH_JWT_AUDIENCE') or None

    try:
        return jwt.decode(
            token,
            key,
            algorithms=[algorithm],
            audience=audience,
            options={'verify_exp': True, 'verify_aud': audience is not None, 'require': ['sub', 'exp']}
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError('Session expired. Please sign in again.')
    except jwt.InvalidTokenError as e:
        current_app.logger.warning(f"Invalid token: {e}")
        raise AuthenticationError('Invalid token')

def activate_invitation(subject, email):
    """Create the profile for a pre-registered user on their first sign-in"""
    from app.models.invitation import UserInvitation
    from app.models.user import Profile
    from app.models.contractor import Contractor

    invitation = UserInvitation.query.filter(
        db.func.lower(UserInvitation.email) == email.lower(),
        UserInvitation.used_at.is_(None)
    ).first()
    if not invitation:
        return None

    now = datetime.now(timezone.utc)
    profile = Profile(
        id=subject,
        email=invitation.email,
        full_name=invitation.full_name,
        role=invitation.role,
        invited_at=invitation.created_at,
        activated_at=now
    )
    db.session.add(profile)
    if invitation.role == 'contractor':
        db.session.add(Contractor(
            contractor_id=subject,
            contract_start=invitation.contract_start,
            contract_end=invitation.contract_end
        ))
    invitation.used_at = now
    db.session.commit()
    current_app.logger.info(f"Activated invitation for {invitation.email} as {invitation.role}")
    return profile

def get_current_user():
    """Get current user from token; None when no token was sent"""
    auth_header = request.headers.get('Authorization')
    if not auth_header:
        return None

    # Extract token (format: "Bearer <token>")
    scheme, _, token = auth_header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None

    claims = verify_token(token.strip())

    # Role comes from the database, never from the token
    from app.models.user import Profile
    profile = db.session.get(Profile, claims['sub'])
    if profile is None and claims.get('email'):
        profile = activate_invitation(claims['sub'], claims['email'])
    if profile is None:
        raise AuthorizationError('Account is not registered for this portal')
    if not profile.is_active:
        raise AuthorizationError('Account is disabled')

    return {
        'id': profile.id,
        'email': profile.email,
        'full_name': profile.full_name,
        'role': profile.role,
        'profile': profile,
        'token_claims': claims
    }

def require_auth(f):
    """Decorator to require authentication"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_current_user()
        if not user:
            return jsonify({'error': 'Unauthorized', 'message': 'Invalid or missing token'}), 401

        # Attach user to request context
        request.current_user = user
        return f(*args, **kwargs)
    return decorated_function

def require_role(*roles):
    """Decorator to require specific role(s)"""
    def decorator(f):
        @wraps(f)
        @require_auth
        def decorated_function(*args, **kwargs):
            user = request.current_user
            user_role = user.get('role')

            if not user_role or user_role not in roles:
                return jsonify({
                    'error': 'Forbidden',
                    'message': f'Required role: {", ".join(roles)}'
                }), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator
