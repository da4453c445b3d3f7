"""
Smoke checks for the EMR API against a running server.
Start the server first: emr-server
Then run this: python scripts/smoke_api.py
"""

import json
import os

import requests

BASE_URL = os.getenv("EMR_BASE_URL", "http://localhost:8000")


def show(title, response):
    print("\n" + "=" * 50)
    print(f"CHECK: {title}")
    print("=" * 50)
    print(f"Status Code: {response.status_code}")
    try:
        print(f"Response: {json.dumps(response.json(), indent=2)}")
    except ValueError:
        print(f"Response: {response.text[:200]}")


def check_health(http):
    response = http.get(f"{BASE_URL}/health")
    show("Health Check", response)
    return response.status_code == 200


def check_patients_without_session():
    response = requests.get(f"{BASE_URL}/api/patients")
    show("Patients Without Session", response)
    return response.status_code == 401


def check_login_invalid():
    response = requests.post(
        f"{BASE_URL}/api/auth/login",
        json={"username": "nobody", "password": "wrong"},
    )
    show("Login with Invalid Credentials", response)
    return response.status_code == 401


def check_login(http, username, password):
    response = http.post(
        f"{BASE_URL}/api/auth/login",
        json={"username": username, "password": password},
    )
    show("Login", response)
    if response.status_code != 200:
        return None
    return response.json()["user"]


def check_nurse_flow(http):
    response = http.post(f"{BASE_URL}/api/patients", json={
        "firstName": "Smoke", "lastName": "Test",
        "roomNumber": "101", "diagnosis": "Smoke test",
    })
    show("Add Patient", response)
    if response.status_code != 201:
        return False
    patient_id = response.json()["patient"]["_id"]

    response = http.post(f"{BASE_URL}/api/entries", json={
        "patientId": patient_id,
        "vitalSigns": {"heartRate": "72"},
    })
    show("Add Entry", response)
    ok = response.status_code == 201

    response = http.get(f"{BASE_URL}/api/admin/users")
    show("Admin Users As Nurse", response)
    ok = ok and response.status_code == 403

    response = http.delete(f"{BASE_URL}/api/patients", params={"id": patient_id})
    show("Delete Patient", response)
    return ok and response.status_code == 200


def check_admin_flow(http):
    response = http.get(f"{BASE_URL}/api/admin/users")
    show("List Users", response)
    ok = response.status_code == 200

    response = http.get(f"{BASE_URL}/api/patients")
    show("Patients As Admin", response)
    return ok and response.status_code == 403


def check_logout(http):
    response = http.post(f"{BASE_URL}/api/auth/logout")
    show("Logout", response)
    return response.status_code == 200


def main():
    print("=" * 50)
    print("EMR API Smoke Checks")
    print("=" * 50)
    print(f"Base URL: {BASE_URL}")
    print("Make sure the server is running!")
    print()

    username = input("Username: ").strip()
    password = input("Password: ").strip()
    if not username or not password:
        print("ERROR: username and password are required")
        return

    http = requests.Session()
    results = {}
    try:
        results["Health Check"] = check_health(http)
        results["No Session"] = check_patients_without_session()
        results["Login Invalid"] = check_login_invalid()

        user = check_login(http, username, password)
        if user:
            results["Login Valid"] = True
            if user["role"] == "admin":
                results["Admin Flow"] = check_admin_flow(http)
            else:
                results["Nurse Flow"] = check_nurse_flow(http)
            results["Logout"] = check_logout(http)
        else:
            results["Login Valid"] = False
            print("\nERROR: Could not login. Remaining checks skipped.")
    except requests.RequestException as e:
        print(f"\n\nERROR: {e}")

    print("\n" + "=" * 50)
    print("SUMMARY")
    print("=" * 50)
    passed = sum(1 for v in results.values() if v)
    for name, result in results.items():
        print(f"{'✓ PASS' if result else '✗ FAIL'}: {name}")
    print(f"\nTotal: {passed}/{len(results)} checks passed")
    print("=" * 50)


if __name__ == "__main__":
    main()
