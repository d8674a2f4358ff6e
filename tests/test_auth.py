from jevehome.auth import hash_password


def test_login_and_me(client, make_user):
    make_user("family", email="jia@example.com", password_hash=hash_password("anniversary"))

    response = client.post("/api/auth/login", json={"email": " JIA@example.com ", "password": "anniversary"})
    assert response.status_code == 200
    token = response.json()["access_token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["email"] == "jia@example.com"
    assert me.json()["role"] == "family"


def test_login_wrong_password(client, make_user):
    make_user("family", email="vickey@example.com", password_hash=hash_password("right"))

    response = client.post("/api/auth/login", json={"email": "vickey@example.com", "password": "wrong"})

    assert response.status_code == 401


def test_login_user_without_password(client, make_user):
    make_user("family", email="nopass@example.com")

    response = client.post("/api/auth/login", json={"email": "nopass@example.com", "password": "x"})

    assert response.status_code == 401


def test_me_requires_token(client):
    assert client.get("/api/auth/me").status_code == 401
