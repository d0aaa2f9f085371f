from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from cedo.models.proposal import Proposal, ProposalStatusType, ReportStatusType


class ProposalRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(self, proposal: Proposal) -> Proposal:
        """Insert a proposal inside the caller's transaction"""
        self.db.add(proposal)
        self.db.flush()
        self.db.refresh(proposal)
        return proposal

    def get_by_id(self, proposal_id: int) -> Proposal | None:
        """Lookup by surrogate key"""
        stmt = select(Proposal).where(Proposal.id == proposal_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_uuid(self, public_id: UUID) -> Proposal | None:
        """Lookup by public identifier"""
        stmt = select(Proposal).where(Proposal.uuid == public_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def refresh(self, proposal: Proposal) -> Proposal:
        """Reload after a CAS update (those bypass the identity map)"""
        self.db.refresh(proposal)
        return proposal

    def update_fields(self, proposal: Proposal, values: dict[str, Any], updated_at: datetime) -> Proposal:
        """Non-status column update. Status columns only change through the CAS methods below."""
        for key, value in values.items():
            setattr(proposal, key, value)
        proposal.updated_at = updated_at
        self.db.flush()
        return proposal

    def transition_status_if(
        self,
        proposal_id: int,
        expected_status: ProposalStatusType,
        expected_version: int,
        new_status: ProposalStatusType,
        values: dict[str, Any],
    ) -> bool:
        """
        Compare-and-swap on proposal_status
        - WHERE id = :id AND proposal_status = :expected AND version = :v
        - bumps version; returns False when another writer got there first
        """
        stmt = (
            update(Proposal)
            .where(
                Proposal.id == proposal_id,
                Proposal.proposal_status == expected_status,
                Proposal.version == expected_version,
            )
            .values(
                proposal_status=new_status,
                version=Proposal.version + 1,
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.flush()
        return result.rowcount == 1

    def transition_report_status_if(
        self,
        proposal_id: int,
        expected_status: ReportStatusType,
        expected_version: int,
        new_status: ReportStatusType,
        values: dict[str, Any],
    ) -> bool:
        """Compare-and-swap on report_status (same version column)"""
        stmt = (
            update(Proposal)
            .where(
                Proposal.id == proposal_id,
                Proposal.report_status == expected_status,
                Proposal.version == expected_version,
            )
            .values(
                report_status=new_status,
                version=Proposal.version + 1,
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.flush()
        return result.rowcount == 1
