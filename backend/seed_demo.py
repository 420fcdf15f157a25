"""
Demo Seeder Script - Walks a few UIDs through the workflow via the API.

Creates UIDs, binds staff, submits learner forms and drives each UID as far
along the pipeline as requested, so the dashboards have something to show.
This can be run from inside the backend container or from the host.

Usage:
    python seed_demo.py                              # Uses default URL
    python seed_demo.py http://localhost:8000        # Custom API URL
    python seed_demo.py http://backend:8000          # Inside Docker network
"""

import os
import sys

import httpx

from trainingflow.services.dashboard_cache import DashboardCache

ADMIN = {"X-Actor-Role": "admin", "X-Actor-Id": "admin-1"}
ASSESSOR = {"X-Actor-Role": "assessor", "X-Actor-Id": "assessor-1"}
MODERATOR = {"X-Actor-Role": "moderator", "X-Actor-Id": "moderator-1"}

LEARNERS = [
    ("Thandi Mokoena", "Acme Logistics"),
    ("Pieter van Wyk", "Acme Logistics"),
    ("Naledi Dube", "Blue Crane Foods"),
]

# How far each demo UID is driven
STOPS = ["assessor_started", "assessor_reviewed", "moderation_complete", "approved"]


class SeedError(Exception):
    pass


def _request(client, method, path, headers=None, body=None, expect_status=None):
    """
    Send one workflow call. A timeout leaves the outcome unknown, so the UID
    is re-fetched: if it already reached `expect_status` the call committed.
    """
    try:
        resp = client.request(method, path, headers=headers, json=body)
    except httpx.TimeoutException:
        if expect_status is None:
            raise
        uid = path.rstrip("/").split("/")[-1]
        current = client.get(f"/api/uid/{uid}", headers=ADMIN).json().get("status")
        if current == expect_status:
            print(f"  ⏱  {method} {path} timed out but UID {uid} is at {current}")
            return {"status": current}
        raise SeedError(f"{method} {path} timed out; UID {uid} still at {current}")
    if resp.status_code >= 400:
        raise SeedError(f"{method} {path} → {resp.status_code}: {resp.text}")
    return resp.json()


def seed_uid(client, stop, learners):
    uid = _request(client, "POST", "/api/uid", ADMIN, {
        "assessor_name": "Sipho Ndlovu", "assessor_number": "ASR-0042", "assessor_age": 41,
    })["uid"]
    _request(client, "PUT", f"/api/uid/{uid}/assign", ADMIN, {
        "assessor_id": ASSESSOR["X-Actor-Id"], "moderator_id": MODERATOR["X-Actor-Id"],
    })
    _request(client, "POST", f"/api/attendance/{uid}", ASSESSOR, {
        "data": {"present": [name for name, _ in learners], "date": "2026-10-19"},
    }, expect_status="assessor_started")
    if stop == "assessor_started":
        return uid

    students = []
    for name, company in learners:
        result = _request(client, "POST", f"/api/user_form/{uid}", body={
            "form_data": {"page1": {"learnerName": name, "companyName": company}},
        })
        students.append(result["student"]["student_id"])
    # the assessor corrects a typo before signing off the first form
    name, company = learners[0]
    _request(client, "PUT", f"/api/assessor-review/{uid}/{students[0]}", ASSESSOR, {
        "form_data": {"page1": {"learnerName": name, "companyName": company + " (Pty) Ltd"}},
    })
    for student_id in students:
        _request(client, "POST", f"/api/assessor-review/{uid}/{student_id}/complete", ASSESSOR)
    if stop == "assessor_reviewed":
        return uid

    _request(client, "POST", f"/api/send_to_moderator/{uid}", ASSESSOR,
             expect_status="ready_for_moderation")
    for student_id in students:
        _request(client, "POST", f"/api/student/{uid}/{student_id}/status", MODERATOR,
                 {"status": "moderated"})
    _request(client, "POST", f"/api/moderation/{uid}", MODERATOR, {
        "form_data": {"outcome": "competent", "notes": "Evidence complete"},
    }, expect_status="moderation_complete")
    if stop == "moderation_complete":
        return uid

    for student_id in students:
        _request(client, "POST", f"/api/student/{uid}/{student_id}/status", MODERATOR,
                 {"status": "sent_to_admin"})
    _request(client, "POST", f"/api/send_to_admin/{uid}", MODERATOR, expect_status="sent_to_admin")
    for student_id in students:
        _request(client, "POST", f"/api/student/{uid}/{student_id}/status", ADMIN,
                 {"status": "approved"})
    _request(client, "POST", f"/api/admin_approve/{uid}", ADMIN, expect_status="approved")
    return uid


def main():
    api_url = sys.argv[1] if len(sys.argv) > 1 else os.getenv("API_URL", "http://localhost:8000")
    print(f"Seeding demo data at: {api_url}")
    print()

    with httpx.Client(base_url=api_url, timeout=30.0) as client:
        for i, stop in enumerate(STOPS):
            learners = LEARNERS[: 1 + i % len(LEARNERS)]
            try:
                uid = seed_uid(client, stop, learners)
            except (SeedError, httpx.HTTPError) as e:
                print(f"  ❌ {stop}: {e}")
                sys.exit(1)
            print(f"  ✅ UID {uid}: {stop} ({len(learners)} learners)")

        stats = client.get("/api/stats").json()
        # the same view an admin dashboard loads on mount
        cache = DashboardCache.from_snapshot(
            client.get("/api/uids", headers=ADMIN).json()["data"],
            client.get("/api/students", headers=ADMIN).json()["data"],
        )

    print()
    print("=" * 60)
    print("SEED SUMMARY")
    print("=" * 60)
    print(f"  Total UIDs:          {stats.get('total_uids', '?')}")
    print(f"  With assessor:       {stats.get('with_assessor_count', '?')}")
    print(f"  With moderator:      {stats.get('with_moderator_count', '?')}")
    print(f"  Approved:            {stats.get('approved_count', '?')}")
    print(f"  Total students:      {stats.get('total_students', '?')}")
    for uid, entry in sorted(cache.uids.items()):
        print(f"  UID {uid}: {entry['status']:<22} {entry['student_count']} students")
    print("=" * 60)
    print()
    print("✅ Seeding complete! Open the dashboards to watch the live updates.")


if __name__ == "__main__":
    main()
