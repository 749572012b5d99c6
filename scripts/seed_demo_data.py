#!/usr/bin/env python3
"""
Seed a Symptom Diary database with fake doctors, patients and their data.

Every row goes through sign-up or the policy-guarded DataStore, acting as
the identity that would create it in the app. Requires DB_URI to be set.
"""

import random

from faker import Faker

from symptom_diary.config import PROGRESS_STATUSES, ROLE_DOCTOR, ROLE_PATIENT, SEVERITIES, get_env
from symptom_diary.database import init_engine
from symptom_diary.identity import sign_up
from symptom_diary.store import DataStore
from symptom_diary.symptom_lookup import REFERENCE_SYMPTOMS

# --------------------------------------------------------------------
# CONFIG
# --------------------------------------------------------------------
NUM_DOCTORS = 3
NUM_PATIENTS = 10
DEMO_PASSWORD = "password123"

PER_PATIENT = {
    "doctors": (1, 2),       # min, max assignments per patient
    "symptoms": (1, 5),
    "notes": (0, 2),         # per symptom, per assigned doctor
    "messages": (0, 4),      # per assigned doctor
}

AREAS = ["left arm", "right arm", "face", "neck", "chest", "back", "left knee", "scalp"]
DURATIONS = ["1 day", "3 days", "1 week", "2 weeks", "a month"]

fake = Faker()
random.seed(42)
Faker.seed(42)


# --------------------------------------------------------------------
# HELPERS
# --------------------------------------------------------------------
def per_patient_count(kind):
    lo, hi = PER_PATIENT.get(kind, (0, 0))
    return random.randint(lo, hi)


# --------------------------------------------------------------------
# SEED FUNCTIONS
# --------------------------------------------------------------------
def seed_people(store, role, n):
    ids = []
    for _ in range(n):
        name = fake.name()
        if role == ROLE_DOCTOR:
            name = f"Dr. {name}"
        ctx = sign_up(store, fake.unique.email(), DEMO_PASSWORD, name, role)
        ids.append(ctx.user_id)
    return ids


def seed_assignments(store, patient_ids, doctor_ids):
    pairs = []
    for pid in patient_ids:
        k = min(per_patient_count("doctors"), len(doctor_ids))
        for did in random.sample(doctor_ids, k):
            store.insert(pid, "patient_doctor_assignments", {"patient_id": pid, "doctor_id": did})
            pairs.append((pid, did))
    return pairs


def seed_symptoms(store, patient_ids):
    by_patient = {}
    for pid in patient_ids:
        by_patient[pid] = []
        for _ in range(per_patient_count("symptoms")):
            ref = random.choice(REFERENCE_SYMPTOMS)
            row = store.insert(pid, "symptoms", {
                "patient_id": pid,
                "title": ref.name,
                "description": fake.sentence(nb_words=12),
                "severity": random.choice(SEVERITIES),
                "affected_area": random.choice(AREAS),
                "duration": random.choice(DURATIONS),
            })
            by_patient[pid].append(row["id"])
    return by_patient


def seed_notes(store, pairs, symptoms_by_patient):
    for pid, did in pairs:
        for sid in symptoms_by_patient.get(pid, []):
            for _ in range(per_patient_count("notes")):
                store.insert(did, "doctor_notes", {
                    "symptom_id": sid,
                    "doctor_id": did,
                    "note": fake.sentence(nb_words=14),
                    "progress_status": random.choice(PROGRESS_STATUSES),
                })


def seed_messages(store, pairs):
    for pid, did in pairs:
        for _ in range(per_patient_count("messages")):
            sender, receiver = random.choice([(pid, did), (did, pid)])
            store.insert(sender, "messages", {
                "sender_id": sender,
                "receiver_id": receiver,
                "content": fake.sentence(nb_words=10),
            })


# --------------------------------------------------------------------
# MAIN
# --------------------------------------------------------------------
def main():
    engine = init_engine(get_env("DB_URI"))
    store = DataStore(engine)

    print("Seeding doctors...")
    doctor_ids = seed_people(store, ROLE_DOCTOR, NUM_DOCTORS)

    print("Seeding patients...")
    patient_ids = seed_people(store, ROLE_PATIENT, NUM_PATIENTS)

    print("Seeding assignments...")
    pairs = seed_assignments(store, patient_ids, doctor_ids)

    print("Seeding symptoms, notes and messages...")
    symptoms_by_patient = seed_symptoms(store, patient_ids)
    seed_notes(store, pairs, symptoms_by_patient)
    seed_messages(store, pairs)

    print(f"Done! All demo accounts use the password '{DEMO_PASSWORD}'.")


if __name__ == "__main__":
    main()
