#!/usr/bin/env python3
"""Smoke check of the login flow against a running server."""
import sys

import requests


def check_auth_flow(base_url: str = "http://localhost:8000") -> bool:
    """Walk through login, protected access, validation and logout."""
    print("🔐 Testing session token flow")
    print("=" * 50)

    # 1. Login with the seeded admin account
    print("\n1. Login with correct credentials...")
    try:
        response = requests.post(
            f"{base_url}/api/auth/login",
            json={"username": "admin", "password": "admin123"},
        )
    except requests.exceptions.ConnectionError:
        print(f"❌ Cannot connect to server. Make sure it's running on {base_url}")
        return False
    if response.status_code != 200:
        print(f"❌ Login failed: {response.status_code} - {response.text}")
        return False
    token = response.json()["token"]
    print(f"✅ Login successful! Token: {token[:50]}...")

    # 2. Wrong password gets the generic failure
    print("\n2. Login with a wrong password...")
    response = requests.post(
        f"{base_url}/api/auth/login", json={"username": "admin", "password": "nope"}
    )
    if response.status_code != 401:
        print(f"❌ Expected 401, got: {response.status_code} - {response.text}")
        return False
    print("✅ Rejected with", response.json()["message"])

    # 3. Protected endpoint with and without the token
    print("\n3. Student list with and without a token...")
    headers = {"Authorization": f"Bearer {token}"}
    with_token = requests.get(f"{base_url}/api/students", headers=headers)
    without_token = requests.get(f"{base_url}/api/students")
    if with_token.status_code != 200:
        print(f"❌ Protected endpoint failed: {with_token.status_code} - {with_token.text}")
        return False
    if without_token.status_code != 401:
        print(f"❌ Expected 401 without token, got: {without_token.status_code}")
        return False
    print(f"✅ {len(with_token.json())} students listed, anonymous request refused")

    # 4. Validate a good and a tampered token
    print("\n4. Validate tokens...")
    good = requests.post(f"{base_url}/api/auth/validate", json={"token": token}).json()
    bad = requests.post(f"{base_url}/api/auth/validate", json={"token": token[:-3] + "abc"}).json()
    if not good["valid"] or bad["valid"]:
        print(f"❌ Unexpected validation results: {good} / {bad}")
        return False
    print(f"✅ Token belongs to {good['username']}, tampered token refused")

    # 5. Logout
    print("\n5. Logout...")
    response = requests.post(f"{base_url}/api/auth/logout")
    if response.status_code != 200:
        print(f"❌ Logout failed: {response.status_code}")
        return False
    print("✅", response.json()["message"])

    print("\n🎉 All authentication checks passed!")
    return True


if __name__ == "__main__":
    url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"
    sys.exit(0 if check_auth_flow(url) else 1)
