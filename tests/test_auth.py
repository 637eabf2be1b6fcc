"""
Tests for UserRepository, password hashing and the sign-up flow
"""
from datetime import date
from urllib.parse import parse_qs, urlparse

import pytest

from auth_utils import PURPOSE_VERIFY, create_jwt, decode_jwt, hash_password, verify_password
from crud.user import UserRepository
from utils.security_utils import validate_email, validate_password_strength

PASSWORD = "Canary-Song-2026!"


@pytest.mark.asyncio
async def test_create_and_get_user(test_db):
    """
    Test creating a new user and retrieving it by email.

    This test verifies:
    - Emails are stored lower-cased
    - New users start on the free tier
    - Lookup by email is case-insensitive
    """
    user_repo = UserRepository(test_db)

    created_user = await user_repo.create_user({
        "email": "Test@Example.com",
        "hashed_password": hash_password(PASSWORD),
    })
    await test_db.commit()

    assert created_user.email == "test@example.com"
    assert created_user.is_paid is False
    assert created_user.subscription_tier == "free"

    retrieved_user = await user_repo.get_user_by_email("TEST@example.com")
    assert retrieved_user is not None
    assert retrieved_user.id == created_user.id


@pytest.mark.asyncio
async def test_ensure_user_is_insert_or_ignore(test_db):
    user_repo = UserRepository(test_db)

    first = await user_repo.ensure_user("buyer@example.com")
    second = await user_repo.ensure_user("Buyer@Example.com")
    await test_db.commit()

    assert first.id == second.id
    assert second.is_paid is False


@pytest.mark.asyncio
async def test_grant_and_revoke_entitlement(test_db):
    user_repo = UserRepository(test_db)

    granted = await user_repo.grant_entitlement(
        "buyer@example.com",
        "basic",
        subscription_start=date(2026, 3, 1),
        subscription_end=date(2026, 4, 1),
        stripe_customer_id="cus_1",
    )
    assert (granted.is_paid, granted.subscription_tier, granted.stripe_customer_id) == (True, "basic", "cus_1")
    assert granted.subscription_end == date(2026, 4, 1)

    revoked = await user_repo.revoke_entitlement("buyer@example.com")
    assert (revoked.is_paid, revoked.subscription_tier) == (False, "free")
    assert (revoked.subscription_start, revoked.subscription_end) == (None, None)
    # Customer link survives cancellation
    assert revoked.stripe_customer_id == "cus_1"

    assert await user_repo.revoke_entitlement("nobody@example.com") is None


@pytest.mark.asyncio
async def test_grant_rejects_free_tier(test_db):
    with pytest.raises(ValueError):
        await UserRepository(test_db).grant_entitlement("buyer@example.com", "free")


def test_password_hashing():
    hashed = hash_password(PASSWORD)

    assert hashed != PASSWORD
    assert verify_password(PASSWORD, hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password(PASSWORD, None)


def test_jwt_purpose_is_enforced():
    session_token = create_jwt("42")
    verify_token = create_jwt("42", purpose=PURPOSE_VERIFY)

    assert decode_jwt(session_token)["sub"] == "42"
    assert decode_jwt(verify_token) is None
    assert decode_jwt(verify_token, purpose=PURPOSE_VERIFY)["sub"] == "42"
    assert decode_jwt("not-a-token") is None


@pytest.mark.parametrize(
    "password",
    ["short1!A", "alllowercase123!", "ALLUPPERCASE123!", "NoDigitsHere!!", "NoSpecials12345"],
)
def test_weak_passwords_are_rejected(password):
    with pytest.raises(ValueError):
        validate_password_strength(password)


def test_validate_email():
    assert validate_email("jane@example.com")
    assert not validate_email("jane@")
    assert not validate_email("")


@pytest.mark.asyncio
async def test_signup_verify_and_login(client, mailer, session_factory):
    signup = await client.post("/api/auth/signup", json={"email": "Jane@Example.com", "password": PASSWORD})

    assert signup.status_code == 200
    assert "auth_token=" in signup.headers["set-cookie"]
    assert "httponly" in signup.headers["set-cookie"].lower()

    to, template_id, data = mailer.sent[0]
    assert (to, template_id) == ("jane@example.com", "welcome_verify")
    link = urlparse(data["verification_link"])
    assert link.netloc == "app.test"
    token = parse_qs(link.query)["token"][0]

    verified = await client.get("/api/auth/verify", params={"token": token})
    assert verified.status_code == 200

    login = await client.post("/api/auth/login", json={"email": "jane@example.com", "password": PASSWORD})
    assert login.status_code == 200

    me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {create_jwt(login.json()['user_id'])}"})
    assert me.status_code == 200
    assert me.json()["email"] == "jane@example.com"
    assert me.json()["email_verified"] is True
    assert me.json()["is_paid"] is False


@pytest.mark.asyncio
async def test_signup_claim_stays_locked_until_verified(client, mailer, session_factory):
    async with session_factory() as session:
        await UserRepository(session).grant_entitlement("buyer@example.com", "advanced")
        await session.commit()

    signup = await client.post("/api/auth/signup", json={"email": "buyer@example.com", "password": PASSWORD})
    again = await client.post("/api/auth/signup", json={"email": "buyer@example.com", "password": PASSWORD})

    assert signup.status_code == 200
    assert again.status_code == 400
    headers = {"Authorization": f"Bearer {create_jwt(signup.json()['user_id'])}"}

    # Whoever typed the address has not shown they own the inbox yet
    me = await client.get("/api/auth/me", headers=headers)
    assert me.json()["subscription_tier"] == "advanced"
    assert me.json()["has_paid_access"] is False
    assert (await client.get("/api/etfs", headers=headers)).json()["is_paid"] is False
    assert (await client.get("/api/etfs/export.csv", headers=headers)).status_code == 403

    token = parse_qs(urlparse(mailer.sent[0][2]["verification_link"]).query)["token"][0]
    assert (await client.get("/api/auth/verify", params={"token": token})).status_code == 200

    me = await client.get("/api/auth/me", headers=headers)
    assert me.json()["has_paid_access"] is True
    assert (await client.get("/api/etfs", headers=headers)).json()["is_paid"] is True
    assert (await client.get("/api/etfs/export.csv", headers=headers)).status_code == 200


@pytest.mark.asyncio
async def test_signup_rejects_weak_password(client, mailer):
    response = await client.post("/api/auth/signup", json={"email": "jane@example.com", "password": "password"})

    assert response.status_code == 400
    assert mailer.sent == []


@pytest.mark.asyncio
async def test_login_with_wrong_password(client):
    await client.post("/api/auth/signup", json={"email": "jane@example.com", "password": PASSWORD})

    response = await client.post("/api/auth/login", json={"email": "jane@example.com", "password": "Wrong-Pass-2026!"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_verify_rejects_session_token(client):
    response = await client.get("/api/auth/verify", params={"token": create_jwt("1")})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_me_requires_token(client):
    response = await client.get("/api/auth/me")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_security_headers(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.headers["x-frame-options"] == "DENY"
    assert response.headers["x-content-type-options"] == "nosniff"
    assert "https://js.stripe.com" in response.headers["content-security-policy"]
