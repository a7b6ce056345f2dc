"""Certifications and their tag links."""

from app.certifications.service import CertificationService

__all__ = ["CertificationService"]
