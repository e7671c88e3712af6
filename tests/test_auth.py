"""
Tests for accounts, tokens and protected endpoints.
"""

from datetime import timedelta

import pytest

from api.config import settings
from services.auth_service import AuthService, AuthenticationError, hash_password, verify_password
from services.exceptions import BusinessRuleError, ConflictError


@pytest.fixture
def auth(session):
    return AuthService(session, secret_key='test-secret', bcrypt_rounds=4)


@pytest.fixture
def enforce_auth(monkeypatch):
    monkeypatch.setattr(settings, 'ENABLE_AUTH', True)


class TestPasswords:

    def test_hash_and_verify(self):
        hashed = hash_password('secreto123', rounds=4)
        assert hashed != 'secreto123'
        assert verify_password('secreto123', hashed)
        assert not verify_password('otra', hashed)

    def test_malformed_hash(self):
        assert verify_password('secreto123', 'not-a-bcrypt-hash') is False


class TestAuthService:
    """Test registration, login and tokens."""

    def test_register_lowercases_email(self, auth):
        user = auth.register(' Coordinador@Campana.co ', 'secreto123', 'Coordinador')
        assert user.email == 'coordinador@campana.co'
        assert user.hashed_password != 'secreto123'

    def test_duplicate_email(self, auth):
        auth.register('coordinador@campana.co', 'secreto123')
        with pytest.raises(ConflictError):
            auth.register('COORDINADOR@campana.co', 'otra-clave')

    def test_register_rejects_password_over_bcrypt_limit(self, auth):
        with pytest.raises(BusinessRuleError):
            auth.register('coordinador@campana.co', 'ñ' * 40)

    def test_authenticate(self, auth):
        user = auth.register('coordinador@campana.co', 'secreto123')
        assert auth.authenticate('Coordinador@campana.co', 'secreto123').id == user.id

        with pytest.raises(AuthenticationError) as exc_info:
            auth.authenticate('coordinador@campana.co', 'equivocada')
        assert exc_info.value.message == 'Invalid credentials'

    def test_inactive_user_cannot_log_in(self, auth, session):
        user = auth.register('coordinador@campana.co', 'secreto123')
        user.is_active = False
        session.commit()
        with pytest.raises(AuthenticationError):
            auth.authenticate('coordinador@campana.co', 'secreto123')

    def test_token_round_trip(self, auth):
        user = auth.register('coordinador@campana.co', 'secreto123')
        token = auth.create_access_token(user)

        payload = auth.decode_token(token)
        assert payload['sub'] == str(user.id)
        assert auth.user_from_token(token).id == user.id

    def test_expired_token(self, auth):
        user = auth.register('coordinador@campana.co', 'secreto123')
        token = auth.create_access_token(user, expires_delta=timedelta(minutes=-1))
        with pytest.raises(AuthenticationError):
            auth.decode_token(token)

    def test_token_signed_with_other_key(self, auth, session):
        user = auth.register('coordinador@campana.co', 'secreto123')
        forged = AuthService(session, secret_key='other-secret').create_access_token(user)
        with pytest.raises(AuthenticationError):
            auth.user_from_token(forged)


class TestAuthAPI:
    """Test the auth endpoints with authentication enforced."""

    def register(self, client, email='coordinador@campana.co', password='secreto123'):
        return client.post('/api/auth/register', json={
            'email': email, 'password': password, 'full_name': 'Coordinador'
        })

    def test_register(self, auth_client, enforce_auth):
        response = self.register(auth_client)
        assert response.status_code == 201
        data = response.json()
        assert data['token_type'] == 'bearer'
        assert data['user']['email'] == 'coordinador@campana.co'
        assert data['access_token']

    def test_register_duplicate(self, auth_client, enforce_auth):
        self.register(auth_client)
        response = self.register(auth_client)
        assert response.status_code == 409
        assert 'already exists' in response.json()['error']

    def test_register_short_password(self, auth_client, enforce_auth):
        response = self.register(auth_client, password='123')
        assert response.status_code == 422

    @pytest.mark.parametrize('password', ['a' * 73, 'ñ' * 40])
    def test_register_long_password(self, auth_client, enforce_auth, password):
        response = self.register(auth_client, password=password)
        assert response.status_code == 422

    def test_register_password_at_limit(self, auth_client, enforce_auth):
        assert self.register(auth_client, password='ñ' * 36).status_code == 201

    def test_login_long_password(self, auth_client, enforce_auth):
        self.register(auth_client)
        response = auth_client.post('/api/auth/login', json={
            'email': 'coordinador@campana.co', 'password': 'x' * 100
        })
        assert response.status_code == 401

    def test_login_and_me(self, auth_client, enforce_auth):
        self.register(auth_client)

        response = auth_client.post('/api/auth/login', json={
            'email': 'coordinador@campana.co', 'password': 'secreto123'
        })
        assert response.status_code == 200
        token = response.json()['access_token']

        response = auth_client.get('/api/auth/me', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 200
        assert response.json()['full_name'] == 'Coordinador'

    def test_login_wrong_password(self, auth_client, enforce_auth):
        self.register(auth_client)
        response = auth_client.post('/api/auth/login', json={
            'email': 'coordinador@campana.co', 'password': 'equivocada'
        })
        assert response.status_code == 401
        assert response.headers['www-authenticate'] == 'Bearer'

    def test_protected_endpoint_requires_token(self, auth_client, enforce_auth):
        response = auth_client.get('/api/planillados')
        assert response.status_code == 401
        assert response.headers['www-authenticate'] == 'Bearer'

    def test_protected_endpoint_rejects_bad_token(self, auth_client, enforce_auth):
        response = auth_client.get('/api/leaders', headers={'Authorization': 'Bearer nope'})
        assert response.status_code == 401

    def test_protected_endpoint_with_token(self, auth_client, enforce_auth):
        token = self.register(auth_client).json()['access_token']
        response = auth_client.get('/api/candidates', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 200
        assert response.json()['total'] == 0

    def test_auth_disabled(self, auth_client, monkeypatch):
        monkeypatch.setattr(settings, 'ENABLE_AUTH', False)
        assert auth_client.get('/api/groups').status_code == 200
        assert auth_client.get('/api/auth/me').status_code == 404
