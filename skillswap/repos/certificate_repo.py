from __future__ import annotations

from typing import Protocol
from uuid import UUID

from skillswap.models.certificate import CourseCertificate
from skillswap.repos import unit_of_work as uow


class CertificateRepo(Protocol):
    async def get_by_enrollment(self, enrollment_id: UUID) -> CourseCertificate | None: ...
    async def add(self, certificate: CourseCertificate) -> None: ...
    async def list_by_user(self, user_id: UUID) -> list[CourseCertificate]: ...


class InMemoryCertificateRepo:
    def __init__(self) -> None:
        self._by_enrollment: dict[UUID, CourseCertificate] = {}

    async def get_by_enrollment(self, enrollment_id: UUID) -> CourseCertificate | None:
        return self._by_enrollment.get(enrollment_id)

    async def add(self, certificate: CourseCertificate) -> None:
        if certificate.enrollment_id in self._by_enrollment:
            raise ValueError("certificate already exists for enrollment")
        uow.put(self._by_enrollment, certificate.enrollment_id, certificate)

    async def list_by_user(self, user_id: UUID) -> list[CourseCertificate]:
        return sorted(
            (c for c in self._by_enrollment.values() if c.user_id == user_id),
            key=lambda c: c.completed_at,
            reverse=True,
        )
