"""Seed the document catalog and credit packages.

Usage:
    cd backend
    python -m scripts.seed_data

    OR from the repository root:
    PYTHONPATH=backend python scripts/seed_data.py

Safe to re-run: existing slugs and package names are left untouched.
"""
import os
import sys

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "backend"))

from decimal import Decimal

from doccredit.models import CreditPackage, DocumentType
from doccredit.platform.config import settings
from doccredit.platform.database import Base, SessionLocal, engine

DOCUMENT_TYPES = [
    # slug, name, name_bn, category, credits, popular
    ("student-id-card", "Student ID Card", "ছাত্র পরিচয়পত্র", "identity", 2, True),
    ("teacher-id-card", "Teacher ID Card", "শিক্ষক পরিচয়পত্র", "identity", 2, False),
    ("admit-card", "Admit Card", "প্রবেশপত্র", "examination", 3, True),
    ("seat-plan", "Exam Seat Plan", "আসন বিন্যাস", "examination", 2, False),
    ("marksheet", "Marksheet", "নম্বরপত্র", "examination", 3, True),
    ("certificate", "Certificate", "সনদপত্র", "certificate", 5, True),
    ("testimonial", "Testimonial", "প্রশংসাপত্র", "certificate", 4, False),
    ("transfer-certificate", "Transfer Certificate", "ছাড়পত্র", "certificate", 5, False),
    ("fee-receipt", "Fee Receipt", "ফি রসিদ", "finance", 1, False),
]

PACKAGES = [
    # name, credits, price, description
    ("Free Monthly", 10, Decimal("0"), "Ten free credits every month"),
    ("Starter", 100, Decimal("250"), "Good for a single exam season"),
    ("Standard", 500, Decimal("1000"), "Most schools pick this"),
    ("Premium", 2000, Decimal("3500"), "Large schools and multi-shift campuses"),
]


def seed():
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        existing_slugs = {slug for (slug,) in db.query(DocumentType.slug).all()}
        created_types = 0
        for slug, name, name_bn, category, credits, popular in DOCUMENT_TYPES:
            if slug in existing_slugs:
                continue
            db.add(
                DocumentType(
                    slug=slug,
                    name=name,
                    name_bn=name_bn,
                    category=category,
                    credits_required=credits,
                    is_active=True,
                    is_popular=popular,
                    usage_count=0,
                )
            )
            created_types += 1

        existing_packages = {name for (name,) in db.query(CreditPackage.name).all()}
        created_packages = 0
        for name, credits, price, description in PACKAGES:
            if name in existing_packages:
                continue
            db.add(
                CreditPackage(
                    name=name,
                    credits=credits,
                    price=price,
                    currency=settings.CREDIT_CURRENCY,
                    description=description,
                    is_active=True,
                )
            )
            created_packages += 1

        db.commit()
        print(f"Seeded {created_types} document types and {created_packages} credit packages.")
    finally:
        db.close()


if __name__ == "__main__":
    seed()
