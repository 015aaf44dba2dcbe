"""
Tests for the seed script
"""

import pytest

from database import SessionLocal
from models import MedicationReminder, Prescription, ReminderFrequency
from scripts.seed_data import seed_all, DEMO_PRESCRIPTIONS


class TestSeedAll:

    @pytest.mark.database
    @pytest.mark.asyncio
    async def test_seeds_reminders_through_auto_create(self):
        await seed_all(clear_existing=True)

        db = SessionLocal()
        try:
            assert db.query(Prescription).count() == len(DEMO_PRESCRIPTIONS)
            frequencies = {
                r.prescription.medication_name: r.frequency
                for r in db.query(MedicationReminder).all()
            }
        finally:
            db.close()

        assert frequencies == {
            "Metformin": ReminderFrequency.TWICE_DAILY,
            "Amlodipine": ReminderFrequency.ONCE_DAILY,
            "Amoxicillin": ReminderFrequency.THREE_TIMES_DAILY,
            "Methotrexate": ReminderFrequency.WEEKLY,
        }

    @pytest.mark.database
    @pytest.mark.asyncio
    async def test_clear_makes_reseeding_repeatable(self):
        await seed_all(clear_existing=True)
        await seed_all(clear_existing=True)

        db = SessionLocal()
        try:
            assert db.query(MedicationReminder).count() == len(DEMO_PRESCRIPTIONS)
        finally:
            db.close()
