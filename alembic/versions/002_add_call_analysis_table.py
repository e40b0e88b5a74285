"""add call analysis table

Revision ID: 002
Revises: 001
Create Date: 2026-10-13 11:20:00.000000
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB


# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'call_analysis',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('call_id', sa.String(), nullable=False),
        sa.Column('patient_id', sa.String(), nullable=False),
        sa.Column('appointment_id', sa.String(), nullable=True),
        sa.Column('call_summary', sa.Text(), nullable=True),
        sa.Column('structured_data', JSONB(), nullable=True),
        sa.Column('success_evaluation', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('success_rubric', sa.Text(), nullable=True),
        sa.Column('call_transcript', sa.Text(), nullable=True),
        sa.Column('call_duration', sa.Float(), nullable=True),
        sa.Column('analysis_timestamp', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_call_analysis_call_id', 'call_analysis', ['call_id'], unique=True)
    op.create_index('ix_call_analysis_patient_id', 'call_analysis', ['patient_id'])
    op.create_index('ix_call_analysis_appointment_id', 'call_analysis', ['appointment_id'])
    op.create_index('ix_call_analysis_created_at', 'call_analysis', ['created_at'])


def downgrade() -> None:
    op.drop_index('ix_call_analysis_created_at', 'call_analysis')
    op.drop_index('ix_call_analysis_appointment_id', 'call_analysis')
    op.drop_index('ix_call_analysis_patient_id', 'call_analysis')
    op.drop_index('ix_call_analysis_call_id', 'call_analysis')
    op.drop_table('call_analysis')
