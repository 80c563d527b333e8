"""Async repositories over the SQLAlchemy models."""

from medlegal.repositories.base_repository import BaseRepository
from medlegal.repositories.case_repository import CaseRepository
from medlegal.repositories.document_repository import DocumentRepository
from medlegal.repositories.medical_bill_repository import MedicalBillRepository
from medlegal.repositories.user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "CaseRepository",
    "DocumentRepository",
    "MedicalBillRepository",
    "UserRepository",
]
