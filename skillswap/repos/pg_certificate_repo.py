"""PostgreSQL implementation of CertificateRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from skillswap.db.tables import CourseCertificateRow
from skillswap.models.certificate import CourseCertificate


class PgCertificateRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_enrollment(self, enrollment_id: UUID) -> CourseCertificate | None:
        stmt = select(CourseCertificateRow).where(
            CourseCertificateRow.enrollment_id == enrollment_id
        )
        row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_certificate(row)

    async def add(self, certificate: CourseCertificate) -> None:
        self._session.add(
            CourseCertificateRow(
                id=certificate.id,
                user_id=certificate.user_id,
                course_id=certificate.course_id,
                enrollment_id=certificate.enrollment_id,
                course_name=certificate.course_name,
                completed_at=certificate.completed_at,
                certificate_url=certificate.certificate_url,
            )
        )
        try:
            await self._session.flush()
        except IntegrityError:
            raise ValueError("certificate already exists for enrollment") from None

    async def list_by_user(self, user_id: UUID) -> list[CourseCertificate]:
        stmt = (
            select(CourseCertificateRow)
            .where(CourseCertificateRow.user_id == user_id)
            .order_by(CourseCertificateRow.completed_at.desc())
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_certificate(r) for r in rows]


def _row_to_certificate(row: CourseCertificateRow) -> CourseCertificate:
    return CourseCertificate(
        id=row.id,
        user_id=row.user_id,
        course_id=row.course_id,
        enrollment_id=row.enrollment_id,
        course_name=row.course_name,
        completed_at=row.completed_at,
        certificate_url=row.certificate_url,
    )
