"""Domain models for the email retry engine."""

from .models import EmailType, FailureClassification, FailureRecord

__all__ = ["EmailType", "FailureClassification", "FailureRecord"]
