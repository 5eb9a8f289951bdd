"""
Simple API smoke script to verify the main endpoints against a running server.
Run: python test_api.py
"""
import sys
import uuid

import requests

BASE = "http://localhost:8000"


def test_endpoints():
    print("Testing Nano Weather API...\n")

    print("✓ Testing /api/weather")
    r = requests.get(f"{BASE}/api/weather", params={"city": "London"})
    assert r.status_code == 200
    weather = r.json()
    print(f"  {weather['city']}, {weather['country']}: {weather['temperature']}°C, {weather['description']}")

    print("✓ Testing /api/suggestions")
    r = requests.get(f"{BASE}/api/suggestions", params={"q": "Lon"})
    assert r.status_code == 200
    print(f"  Found {len(r.json())} suggestions")

    print("✓ Testing /api/generate-roast")
    r = requests.post(f"{BASE}/api/generate-roast", json={"weather": weather})
    assert r.status_code in (200, 500)
    print(f"  {r.json().get('vibe') if r.ok else r.text}")

    print("✓ Testing /api/searches/recent")
    r = requests.get(f"{BASE}/api/searches/recent")
    assert r.status_code == 200

    print("✓ Testing /api/activity")
    r = requests.get(f"{BASE}/api/activity")
    assert r.status_code == 200
    print(f"  {r.json()['total_count']} searches recorded")

    client_id = uuid.uuid4().hex
    print(f"✓ Testing POST /api/streaks/{client_id}/searches")
    r = requests.post(f"{BASE}/api/streaks/{client_id}/searches")
    assert r.status_code == 200
    assert r.json()["currentStreak"] == 1

    print("\n✅ All tests passed!")


if __name__ == "__main__":
    try:
        test_endpoints()
    except Exception as e:
        print(f"\n❌ Test failed: {e}")
        sys.exit(1)
