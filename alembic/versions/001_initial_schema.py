"""Initial TraceLayer schema: projects, sources, extracted intelligence, runs, sharing.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid_pk():
    return sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True)


def _project_fk(nullable=False, ondelete='CASCADE'):
    return sa.Column(
        'project_id',
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey('projects.id', ondelete=ondelete),
        nullable=nullable,
    )


def _source_fk():
    return sa.Column('source_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('sources.id', ondelete='SET NULL'))


def upgrade() -> None:
    # Create projects table (enums will be created automatically)
    op.create_table(
        'projects',
        _uuid_pk(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=False, server_default=''),
        sa.Column('status', sa.Enum('draft', 'uploading', 'processing', 'extracted', 'generating', 'active', 'completed', name='projectstatus'), nullable=False, server_default='draft'),
        sa.Column('output_format', sa.Enum('brd', 'prd', 'both', name='outputformat'), nullable=False, server_default='brd'),
        sa.Column('color', sa.String(20), nullable=False, server_default='#6B7AE8'),
        sa.Column('progress', sa.Integer, nullable=False, server_default='0'),
        sa.Column('source_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('requirement_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('stakeholder_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('decision_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('conflict_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint('progress >= 0 AND progress <= 100', name='valid_project_progress'),
    )
    op.create_index('idx_projects_status', 'projects', ['status'])
    op.create_index('idx_projects_created_at', 'projects', ['created_at'], postgresql_ops={'created_at': 'DESC'})

    # Sources
    op.create_table(
        'sources',
        _uuid_pk(),
        _project_fk(),
        sa.Column('name', sa.String(500), nullable=False),
        sa.Column('type', sa.Enum('email', 'meeting_transcript', 'chat_log', 'document', 'uploaded_file', name='sourcetype'), nullable=False),
        sa.Column('content', sa.Text, nullable=False),
        sa.Column('metadata', postgresql.JSONB, nullable=False, server_default='{}'),
        sa.Column('status', sa.Enum('uploaded', 'classifying', 'classified', 'extracting', 'extracted', 'failed', name='sourcestatus'), nullable=False, server_default='uploaded'),
        sa.Column('relevance_score', sa.Float),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_sources_project', 'sources', ['project_id'])
    op.create_index('idx_sources_status', 'sources', ['status'])

    # Extracted intelligence
    op.create_table(
        'requirements',
        _uuid_pk(),
        _project_fk(),
        sa.Column('requirement_id', sa.String(20), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text, nullable=False, server_default=''),
        sa.Column('category', sa.Enum('functional', 'non_functional', 'business', 'technical', 'security', 'performance', 'compliance', 'integration', name='requirementcategory'), nullable=False),
        sa.Column('priority', sa.Enum('critical', 'high', 'medium', 'low', name='requirementpriority'), nullable=False),
        sa.Column('status', sa.Enum('discovered', 'pending', 'under_review', 'confirmed', 'rejected', 'deferred', name='requirementstatus'), nullable=False, server_default='discovered'),
        sa.Column('confidence_score', sa.Float, nullable=False, server_default='0.5'),
        _source_fk(),
        sa.Column('source_excerpt', sa.Text, nullable=False, server_default=''),
        sa.Column('extraction_reasoning', sa.Text),
        sa.Column('tags', postgresql.JSONB, nullable=False, server_default='[]'),
        sa.Column('extracted_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('project_id', 'requirement_id', name='unique_project_requirement_id'),
        sa.CheckConstraint('confidence_score >= 0 AND confidence_score <= 1', name='valid_requirement_confidence'),
    )
    op.create_index('idx_requirements_project', 'requirements', ['project_id'])
    op.create_index('idx_requirements_category', 'requirements', ['category'])
    op.create_index('idx_requirements_priority', 'requirements', ['priority'])
    op.create_index('idx_requirements_source', 'requirements', ['source_id'])

    op.create_table(
        'stakeholders',
        _uuid_pk(),
        _project_fk(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('role', sa.String(255), nullable=False, server_default=''),
        sa.Column('department', sa.String(255)),
        sa.Column('influence', sa.Enum('decision_maker', 'influencer', 'contributor', 'observer', name='stakeholderinfluence'), nullable=False, server_default='contributor'),
        sa.Column('sentiment', sa.Enum('supportive', 'neutral', 'resistant', 'unknown', name='stakeholdersentiment')),
        sa.Column('mention_count', sa.Integer, nullable=False, server_default='1'),
        sa.Column('source_ids', postgresql.JSONB, nullable=False, server_default='[]'),
        sa.Column('extracted_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_stakeholders_project', 'stakeholders', ['project_id'])

    op.create_table(
        'decisions',
        _uuid_pk(),
        _project_fk(),
        sa.Column('decision_id', sa.String(20), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text, nullable=False, server_default=''),
        sa.Column('type', sa.String(100), nullable=False, server_default='general'),
        sa.Column('status', sa.Enum('proposed', 'approved', 'rejected', 'deferred', name='decisionstatus'), nullable=False, server_default='proposed'),
        _source_fk(),
        sa.Column('source_excerpt', sa.Text, nullable=False, server_default=''),
        sa.Column('confidence_score', sa.Float, nullable=False, server_default='0.5'),
        sa.Column('impacted_requirement_ids', postgresql.JSONB, nullable=False, server_default='[]'),
        sa.Column('extracted_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_decisions_project', 'decisions', ['project_id'])

    op.create_table(
        'timeline_events',
        _uuid_pk(),
        _project_fk(),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text, nullable=False, server_default=''),
        sa.Column('date', sa.String(50)),
        sa.Column('type', sa.Enum('milestone', 'deadline', 'decision', 'approval', 'dependency', name='timelineeventtype'), nullable=False),
        _source_fk(),
        sa.Column('confidence_score', sa.Float, nullable=False, server_default='0.5'),
        sa.Column('extracted_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_timeline_events_project', 'timeline_events', ['project_id'])

    op.create_table(
        'conflicts',
        _uuid_pk(),
        _project_fk(),
        sa.Column('conflict_id', sa.String(20), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text, nullable=False, server_default=''),
        sa.Column('severity', sa.Enum('critical', 'major', 'minor', name='conflictseverity'), nullable=False),
        sa.Column('status', sa.Enum('detected', 'reviewing', 'resolved', 'accepted', name='conflictstatus'), nullable=False, server_default='detected'),
        sa.Column('requirement_ids', postgresql.JSONB, nullable=False, server_default='[]'),
        sa.Column('resolution', sa.Text),
        sa.Column('detected_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('resolved_at', sa.DateTime),
    )
    op.create_index('idx_conflicts_project', 'conflicts', ['project_id'])
    op.create_index('idx_conflicts_severity', 'conflicts', ['severity'])
    op.create_index('idx_conflicts_status', 'conflicts', ['status'])

    op.create_table(
        'traceability_links',
        _uuid_pk(),
        _project_fk(),
        sa.Column('from_type', sa.String(20), nullable=False),
        sa.Column('from_id', sa.String(64), nullable=False),
        sa.Column('to_type', sa.String(20), nullable=False),
        sa.Column('to_id', sa.String(64), nullable=False),
        sa.Column('relationship', sa.String(50), nullable=False),
        sa.Column('strength', sa.Float, nullable=False, server_default='1.0'),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_traceability_links_project', 'traceability_links', ['project_id'])
    op.create_index('idx_traceability_links_from', 'traceability_links', ['from_id'])
    op.create_index('idx_traceability_links_to', 'traceability_links', ['to_id'])

    op.create_table(
        'documents',
        _uuid_pk(),
        _project_fk(),
        sa.Column('type', sa.Enum('brd', 'prd', 'traceability_matrix', name='documenttype'), nullable=False),
        sa.Column('version', sa.Integer, nullable=False, server_default='1'),
        sa.Column('content', postgresql.JSONB, nullable=False, server_default='{}'),
        sa.Column('status', sa.Enum('generating', 'ready', 'outdated', name='documentstatus'), nullable=False, server_default='ready'),
        sa.Column('generated_from', postgresql.JSONB, nullable=False, server_default='{}'),
        sa.Column('generated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('project_id', 'type', 'version', name='unique_document_version'),
    )
    op.create_index('idx_documents_project', 'documents', ['project_id'])
    op.create_index('idx_documents_type', 'documents', ['type'])

    # Pipeline runs and agent logs
    op.create_table(
        'extraction_runs',
        _uuid_pk(),
        _project_fk(),
        sa.Column('status', sa.Enum(
            'queued', 'ingesting', 'classifying', 'extracting_requirements', 'extracting_stakeholders',
            'extracting_decisions', 'extracting_timeline', 'detecting_conflicts', 'building_traceability',
            'generating_documents', 'completed', 'failed', 'cancelled',
            name='runstatus'
        ), nullable=False, server_default='queued'),
        sa.Column('provider', sa.String(20)),
        sa.Column('regenerate', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('started_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('completed_at', sa.DateTime),
        sa.Column('sources_processed', sa.Integer, nullable=False, server_default='0'),
        sa.Column('requirements_found', sa.Integer, nullable=False, server_default='0'),
        sa.Column('stakeholders_found', sa.Integer, nullable=False, server_default='0'),
        sa.Column('decisions_found', sa.Integer, nullable=False, server_default='0'),
        sa.Column('conflicts_found', sa.Integer, nullable=False, server_default='0'),
        sa.Column('error', sa.Text),
    )
    op.create_index('idx_extraction_runs_project', 'extraction_runs', ['project_id'])
    op.create_index('idx_extraction_runs_status', 'extraction_runs', ['status'])
    op.create_index('idx_extraction_runs_started_at', 'extraction_runs', ['started_at'], postgresql_ops={'started_at': 'DESC'})

    op.create_table(
        'agent_logs',
        _uuid_pk(),
        _project_fk(),
        sa.Column('extraction_run_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('extraction_runs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sequence', sa.Integer, nullable=False),
        sa.Column('agent', sa.Enum(
            'ingestion_agent', 'classification_agent', 'requirement_agent', 'stakeholder_agent',
            'decision_agent', 'timeline_agent', 'conflict_agent', 'traceability_agent',
            'document_agent', 'orchestrator', 'integration_agent',
            name='agentname'
        ), nullable=False),
        sa.Column('level', sa.Enum('info', 'processing', 'success', 'warning', 'error', name='loglevel'), nullable=False),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('detail', sa.Text),
        sa.Column('timestamp', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('extraction_run_id', 'sequence', name='unique_run_log_sequence'),
    )
    op.create_index('idx_agent_logs_project', 'agent_logs', ['project_id'])
    op.create_index('idx_agent_logs_run', 'agent_logs', ['extraction_run_id'])
    op.create_index('idx_agent_logs_timestamp', 'agent_logs', ['timestamp'])

    # Sharing, keys and integrations
    op.create_table(
        'shared_links',
        _uuid_pk(),
        _project_fk(),
        sa.Column('token', sa.String(64), nullable=False, unique=True),
        sa.Column('permission', sa.Enum('view', 'comment', 'edit', name='sharepermission'), nullable=False, server_default='view'),
        sa.Column('password', sa.String(255)),
        sa.Column('expires_at', sa.DateTime),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.String(255)),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('access_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('last_accessed_at', sa.DateTime),
    )
    op.create_index('idx_shared_links_project', 'shared_links', ['project_id'])
    op.create_index('idx_shared_links_token', 'shared_links', ['token'])

    op.create_table(
        'api_keys',
        _uuid_pk(),
        sa.Column('provider', sa.Enum('openai', 'gemini', 'anthropic', 'custom', name='llmprovidername'), nullable=False),
        sa.Column('key_encoded', sa.Text, nullable=False),
        sa.Column('key_preview', sa.String(32), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('last_used', sa.DateTime),
    )
    op.create_index('idx_api_keys_provider', 'api_keys', ['provider'])

    op.create_table(
        'integrations',
        _uuid_pk(),
        sa.Column('app_id', sa.String(50), nullable=False),
        sa.Column('label', sa.String(255)),
        sa.Column('status', sa.Enum('disconnected', 'connecting', 'connected', 'error', 'paused', name='integrationstatus'), nullable=False, server_default='disconnected'),
        _project_fk(nullable=True, ondelete='SET NULL'),
        sa.Column('items_synced', sa.Integer, nullable=False, server_default='0'),
        sa.Column('last_sync_at', sa.DateTime),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_integrations_app_id', 'integrations', ['app_id'])
    op.create_index('idx_integrations_status', 'integrations', ['status'])
    op.create_index('idx_integrations_project', 'integrations', ['project_id'])


def downgrade() -> None:
    for table in (
        'integrations', 'api_keys', 'shared_links', 'agent_logs', 'extraction_runs',
        'documents', 'traceability_links', 'conflicts', 'timeline_events', 'decisions',
        'stakeholders', 'requirements', 'sources', 'projects',
    ):
        op.drop_table(table)

    for enum_name in (
        'integrationstatus', 'llmprovidername', 'sharepermission', 'loglevel', 'agentname',
        'runstatus', 'documentstatus', 'documenttype', 'conflictstatus', 'conflictseverity',
        'timelineeventtype', 'decisionstatus', 'stakeholdersentiment', 'stakeholderinfluence',
        'requirementstatus', 'requirementpriority', 'requirementcategory', 'sourcestatus',
        'sourcetype', 'outputformat', 'projectstatus',
    ):
        op.execute(f'DROP TYPE IF EXISTS {enum_name}')
