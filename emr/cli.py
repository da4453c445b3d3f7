"""
Administrative CLI for the Nurse EMR.
Create accounts, list them, seed a demo ward with fake data and generate
the session-cookie signing secret.
"""

import argparse
import getpass
import random
import secrets
import sys

from faker import Faker

from emr.database import init_engine
from emr.store import DuplicateUserError, EmrStore

DIAGNOSES = [
    "Community-acquired pneumonia", "Congestive heart failure exacerbation",
    "COPD exacerbation", "Post-operative hip replacement", "Cellulitis, left leg",
    "Type 2 diabetes, hyperglycaemia", "Urinary tract infection", "Acute pancreatitis",
    "Dehydration", "Atrial fibrillation with RVR",
]


def fake_entry(fake: Faker) -> dict:
    """A plausible set of vital signs and notes."""
    unit = random.choice(["C", "F"])
    temp = round(random.uniform(36.0, 39.2), 1)
    if unit == "F":
        temp = round(temp * 9 / 5 + 32, 1)
    return {
        "vital_signs": {
            "temperature": {"value": str(temp), "unit": unit},
            "bloodPressure": {
                "systolic": str(random.randint(95, 165)),
                "diastolic": str(random.randint(55, 100)),
                "unit": "mmHg",
            },
            "heartRate": str(random.randint(55, 125)),
            "respiratoryRate": str(random.randint(12, 26)),
            "oxygenSaturation": str(random.randint(88, 100)),
        },
        "subjective": {
            "chiefComplaint": fake.sentence(nb_words=6),
            "symptomHistory": fake.sentence(nb_words=14),
            "painLevel": str(random.randint(0, 10)),
        },
        "objective": {
            "generalAppearance": random.choice(["Alert and oriented", "Drowsy but rousable", "Comfortable"]),
            "respiratory": random.choice(["Clear bilaterally", "Crackles at bases", "Expiratory wheeze"]),
        },
        "assessment": fake.sentence(nb_words=10),
        "plan": fake.sentence(nb_words=12),
    }


def seed_demo(store: EmrStore, nurses: int = 3, patients_per_nurse: int = 5,
              entries_per_patient=(0, 3), password: str = "demo1234", seed: int = 42) -> dict:
    """Create demo nurses with patients and entries; returns counts."""
    fake = Faker()
    random.seed(seed)
    Faker.seed(seed)

    counts = {"nurses": 0, "patients": 0, "entries": 0}
    for i in range(1, nurses + 1):
        username = f"nurse{i}"
        try:
            store.create_user(username, password, "nurse")
            counts["nurses"] += 1
        except DuplicateUserError:
            print(f"[seed] {username} already exists, reusing")
        nurse = store.get_user_by_username(username)

        for _ in range(patients_per_nurse):
            patient = store.create_patient(
                nurse_id=nurse["id"],
                first_name=fake.first_name(),
                last_name=fake.last_name(),
                room_number=f"{random.randint(1, 6)}{random.randint(1, 40):02d}",
                diagnosis=random.choice(DIAGNOSES),
            )
            counts["patients"] += 1
            for _ in range(random.randint(*entries_per_patient)):
                store.create_entry(patient["_id"], **fake_entry(fake))
                counts["entries"] += 1
    return counts


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="emr-admin", description=__doc__)
    parser.add_argument("--db", help="SQLAlchemy URL (defaults to DB_URI)")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="create an admin or nurse account")
    create.add_argument("username")
    create.add_argument("--role", choices=["admin", "nurse"], default="nurse")
    create.add_argument("--password", help="prompted for when omitted")

    sub.add_parser("list-users", help="list accounts")

    seed = sub.add_parser("seed-demo", help="create demo nurses, patients and entries")
    seed.add_argument("--nurses", type=int, default=3)
    seed.add_argument("--patients", type=int, default=5, help="patients per nurse")
    seed.add_argument("--password", default="demo1234")

    sub.add_parser("gen-secret", help="print a SESSION_SECRET line for .env")
    return parser


def gen_secret() -> int:
    print(f"SESSION_SECRET={secrets.token_hex(32)}")
    print("# Plain-JSON session cookies stop working once this is set;", file=sys.stderr)
    print("# users will be sent back to the login page.", file=sys.stderr)
    return 0


def main(argv=None, store: EmrStore = None):
    args = build_parser().parse_args(argv)
    if args.command == "gen-secret":
        return gen_secret()

    store = store or EmrStore(init_engine(args.db))

    if args.command == "create-user":
        password = args.password or getpass.getpass("Password: ")
        if not password:
            print("[ERROR] Password must not be empty.", file=sys.stderr)
            return 1
        try:
            user = store.create_user(args.username, password, args.role)
        except ValueError as e:
            print(f"[ERROR] {e}", file=sys.stderr)
            return 1
        print(f"[admin] Created {user['role']} account '{user['username']}' (id={user['_id']})")
        return 0

    if args.command == "list-users":
        users = store.list_users()
        if not users:
            print("(no users)")
        for u in users:
            print(f"{u['_id']:>5}  {u['role']:<6}  {u['username']}")
        return 0

    if args.command == "seed-demo":
        counts = seed_demo(store, nurses=args.nurses, patients_per_nurse=args.patients,
                           password=args.password)
        print(f"[seed] Created {counts['nurses']} nurses, {counts['patients']} patients, "
              f"{counts['entries']} entries (password: {args.password})")
        return 0

    return 1


if __name__ == "__main__":
    sys.exit(main())
