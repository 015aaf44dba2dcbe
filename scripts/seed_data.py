#!/usr/bin/env python
"""
Seed Data
Script to seed the database with a demo patient, prescriptions and reminders
"""

import sys
import os
import argparse
import asyncio
import logging

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import SessionLocal, engine, Base
from models import (
    Patient, Practitioner, Prescription,
    MedicationReminder, AdherenceLog
)
from services.reminder_service import reminder_service
from services.dose_scheduler import dose_scheduler


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


DEMO_PRESCRIPTIONS = [
    {"medication_name": "Metformin", "dosage": "500mg", "frequency": "Twice daily", "duration": "3 months", "quantity": 180},
    {"medication_name": "Amlodipine", "dosage": "5mg", "frequency": "Once daily", "duration": "30 days", "quantity": 30},
    {"medication_name": "Amoxicillin", "dosage": "250mg", "frequency": "Take three times daily", "duration": "7 days", "quantity": 21},
    {"medication_name": "Methotrexate", "dosage": "10mg", "frequency": "Once a week", "duration": "12 weeks", "quantity": 12},
]


def create_tables():
    """Create all database tables"""
    import models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")


def seed_people(db):
    practitioner = Practitioner(first_name="Grace", last_name="Okafor")
    patient = Patient(first_name="Daniel", last_name="Reyes")
    db.add_all([practitioner, patient])
    db.flush()
    logger.info(f"Created practitioner {practitioner.id} and patient {patient.id}")
    return practitioner, patient


def seed_prescriptions(db, practitioner_id: int, patient_id: int):
    prescriptions = []
    for data in DEMO_PRESCRIPTIONS:
        prescription = Prescription(
            practitioner_id=practitioner_id,
            patient_id=patient_id,
            dispensed=True,
            **data
        )
        db.add(prescription)
        prescriptions.append(prescription)
    db.flush()
    logger.info(f"Created {len(prescriptions)} dispensed prescriptions")
    return prescriptions


async def seed_all(clear_existing: bool = False):
    """Run all seed operations"""

    print("\n" + "="*60)
    print("Database Seeding")
    print("="*60)

    create_tables()

    db = SessionLocal()

    try:
        if clear_existing:
            logger.info("Clearing existing data...")
            db.query(AdherenceLog).delete()
            db.query(MedicationReminder).delete()
            db.query(Prescription).delete()
            db.query(Patient).delete()
            db.query(Practitioner).delete()
            db.commit()
            logger.info("Existing data cleared")

        practitioner, patient = seed_people(db)
        prescriptions = seed_prescriptions(db, practitioner.id, patient.id)
        db.commit()

        # Same path a dispense event takes
        for prescription in prescriptions:
            await reminder_service.auto_create_reminder(prescription.id, db=db)

        result = await dose_scheduler.materialize(db=db)

        print("\n" + "="*60)
        print("Seeding Complete!")
        print("="*60)
        print(f"\nDatabase Statistics:")
        print(f"  Patients: {db.query(Patient).count()}")
        print(f"  Prescriptions: {db.query(Prescription).count()}")
        print(f"  Reminders: {db.query(MedicationReminder).count()}")
        print(f"  Adherence Logs: {db.query(AdherenceLog).count()}")
        print(f"  Doses materialized today: {result.logs_created}")

        print(f"\nDemo Patient ID: {patient.id}")
        print(f"Demo Practitioner ID: {practitioner.id}")

    except Exception as e:
        db.rollback()
        logger.error(f"Error during seeding: {e}")
        raise
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(
        description="Seed the database with demo data"
    )
    parser.add_argument(
        "--clear",
        action="store_true",
        help="Clear existing data before seeding"
    )

    args = parser.parse_args()

    asyncio.run(seed_all(clear_existing=args.clear))


if __name__ == "__main__":
    main()
