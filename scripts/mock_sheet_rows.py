from __future__ import annotations

import argparse
import json
import random
import sys
import urllib.error
import urllib.request
from datetime import date, timedelta

SOURCES = ["LinkedIn", "Referral", "Career Fair", "Outreach"]
EVENTS = ["Campus Night", "AI Meetup", "Hackathon", ""]
STAGES = ["Applied", "Screen", "Interview", "Offer", "Hired", "Rejected"]


def post_json(url: str, body: bytes) -> tuple[int, str]:
    request = urllib.request.Request(url, data=body, method="POST")
    request.add_header("Content-Type", "application/json")
    try:
        with urllib.request.urlopen(request, timeout=15) as response:
            return response.status, response.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        return exc.code, exc.read().decode("utf-8")


def build_row(index: int, rng: random.Random) -> dict:
    stage = rng.choice(STAGES)
    outreach = date(2024, 1, 1) + timedelta(days=rng.randint(0, 90))
    row = {
        "candidate_id": f"c{index}",
        "full_name": f"Candidate {index}",
        "email": f"candidate{index}@example.com",
        "source": rng.choice(SOURCES),
        "event_name": rng.choice(EVENTS),
        "role": "Software Engineer",
        "outreach_date": outreach.isoformat(),
        "interview_stage": stage,
        "touchpoints": str(rng.randint(1, 12)),
        "hire_date": "",
        "notes": "mock row generated locally",
    }
    if stage == "Hired":
        row["hire_date"] = (outreach + timedelta(days=rng.randint(14, 60))).isoformat()
    return row


def main() -> int:
    parser = argparse.ArgumentParser(description="Send mock spreadsheet rows to local API.")
    parser.add_argument("--base-url", default="http://127.0.0.1:8000")
    parser.add_argument("--count", type=int, default=10)
    parser.add_argument("--start-index", type=int, default=1)
    parser.add_argument("--seed", type=int, default=7)
    args = parser.parse_args()

    rng = random.Random(args.seed)
    endpoint = f"{args.base_url.rstrip('/')}/sync-row"
    for index in range(args.start_index, args.start_index + args.count):
        row = build_row(index, rng)
        body = json.dumps(row, separators=(",", ":")).encode("utf-8")
        status_code, response = post_json(endpoint, body)
        print(f"{status_code} {row['candidate_id']} {response}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
