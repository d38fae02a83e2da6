"""
Seed script — creates a demo segment, prospects and a draft campaign.

Usage:
    python -m scripts.seed_prospects
    python -m scripts.seed_prospects --dry-run-list   # also start a dry-run job

This creates:
- 1 segment ("Demo segment")
- 5 prospects in it
- 1 draft campaign targeting the segment (send it from the API when SMTP is set)

With --dry-run-list it also posts the same people to /send/recipients as a
dry run and follows the job until it finishes, which exercises the whole
dispatch pipeline without an SMTP server.
"""

import sys
import time

import httpx

BASE_URL = "http://localhost:8000"

PROSPECTS = [
    {"first_name": "Asha", "last_name": "Rao", "client_email": "asha@example.com", "company_name": "Acme"},
    {"first_name": "Ben", "last_name": "Ortiz", "client_email": "ben@example.com", "company_name": "Globex"},
    {"first_name": "Chen", "last_name": "Li", "client_email": "chen@example.com", "company_name": "Initech"},
    {"first_name": "Dana", "last_name": None, "client_email": "dana@example.com", "company_name": "Umbrella"},
    {"first_name": "Eli", "last_name": "Moss", "client_email": "eli@example.com", "company_name": None},
]

PITCH = """Hi {{ firstName }},

Thanks for your interest in what we're building at {{ companyName }}.

- Faster onboarding
- Fewer manual steps

Happy to set up a call this week."""


def seed(dry_run_list: bool = False):
    client = httpx.Client(base_url=BASE_URL, timeout=10.0)

    resp = client.post("/segments/", json={"name": "Demo segment", "description": "Seeded demo data"})
    resp.raise_for_status()
    segment = resp.json()
    print(f"Segment: {segment['name']} (id: {segment['id'][:8]}...)")

    resp = client.post("/prospects/", json={"segment_id": segment["id"], "prospects": PROSPECTS})
    resp.raise_for_status()
    print(f"  {resp.json()['created']} prospects added")

    resp = client.post("/campaigns/", json={
        "name": "Demo campaign",
        "sender_name": "Demo Sender",
        "sender_email": "sender@example.com",
        "subject": "Quick follow-up",
        "pitch": PITCH,
        "segment_id": segment["id"],
    })
    resp.raise_for_status()
    campaign = resp.json()
    print(f"Campaign: {campaign['name']} [{campaign['status']}] (id: {campaign['id'][:8]}...)")

    if dry_run_list:
        resp = client.post("/send/recipients", json={
            "recipients": [
                {
                    "name": " ".join(p for p in (item["first_name"], item["last_name"]) if p),
                    "email": item["client_email"],
                    "first_name": item["first_name"],
                    "company_name": item["company_name"],
                }
                for item in PROSPECTS
            ],
            "sender": "sender@example.com",
            "subject": "Quick follow-up",
            "body": PITCH,
            "dry_run": True,
        })
        resp.raise_for_status()
        job_id = resp.json()["job_id"]
        print(f"\nDry-run job {job_id} started")
        while True:
            job = client.get(f"/send/{job_id}").json()
            print(f"  [{job['status']}] {job['processed']}/{job['total']} processed")
            if job["status"] in ("completed", "failed", "cancelled"):
                break
            time.sleep(0.5)

    print("\nDone!")
    print(f"Send it:       curl -X POST {BASE_URL}/campaigns/{campaign['id']}/send")
    print(f"Job history:   curl {BASE_URL}/send/history")


if __name__ == "__main__":
    seed(dry_run_list="--dry-run-list" in sys.argv[1:])
