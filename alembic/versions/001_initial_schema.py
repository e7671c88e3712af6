"""Initial schema for the campaign management system

Revision ID: 001_initial_schema
Revises:
Create Date: 2025-10-14

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.TIMESTAMP(), server_default=sa.text('CURRENT_TIMESTAMP'),
                  nullable=False, comment='Creation timestamp'),
        sa.Column('updated_at', sa.TIMESTAMP(), server_default=sa.text('CURRENT_TIMESTAMP'),
                  nullable=False, comment='Last modification timestamp'),
    ]


def upgrade() -> None:
    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False, comment='Login email'),
        sa.Column('full_name', sa.String(length=255), nullable=True, comment='Display name'),
        sa.Column('hashed_password', sa.String(length=255), nullable=False, comment='bcrypt password hash'),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        comment='Application users'
    )

    # Create locations table (self-referencing tree)
    op.create_table(
        'locations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False, comment='Display name'),
        sa.Column('type', sa.String(length=20), nullable=False,
                  comment='department, municipality, neighborhood or zone'),
        sa.Column('code', sa.String(length=20), nullable=True, comment='Official DANE code, unique when present'),
        sa.Column('parent_id', sa.Integer(), nullable=True, comment='Parent location'),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('latitude', sa.Numeric(precision=10, scale=7), nullable=True),
        sa.Column('longitude', sa.Numeric(precision=10, scale=7), nullable=True),
        sa.Column('population', sa.Integer(), server_default='0', nullable=False, comment='Estimated population'),
        *_timestamps(),
        sa.CheckConstraint("type IN ('department', 'municipality', 'neighborhood', 'zone')",
                           name='locations_type_check'),
        sa.CheckConstraint('population >= 0', name='locations_population_check'),
        sa.CheckConstraint('parent_id IS NULL OR parent_id <> id', name='locations_parent_not_self_check'),
        sa.ForeignKeyConstraint(['parent_id'], ['locations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
        comment='Administrative and geographic areas (departments, municipalities, ...)'
    )
    op.create_index('idx_locations_parent_id', 'locations', ['parent_id'])
    op.create_index('idx_locations_type', 'locations', ['type'])

    # Create candidates table
    op.create_table(
        'candidates',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('meta', sa.Integer(), server_default='0', nullable=False, comment='Voter goal'),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('position', sa.String(length=50), nullable=True, comment='Office the candidate runs for'),
        sa.Column('party', sa.String(length=100), nullable=True, comment='Political party'),
        *_timestamps(),
        sa.CheckConstraint('meta >= 0', name='candidates_meta_check'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sa.UniqueConstraint('email'),
        comment='Candidates with their vote goals'
    )
    op.create_index('idx_candidates_name', 'candidates', ['name'])

    # Create groups table
    op.create_table(
        'groups',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('zone', sa.String(length=100), nullable=True),
        sa.Column('meta', sa.Integer(), server_default='0', nullable=False, comment='Voter goal'),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('candidate_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('meta >= 0', name='groups_meta_check'),
        sa.ForeignKeyConstraint(['candidate_id'], ['candidates.id']),
        sa.PrimaryKeyConstraint('id'),
        comment='Campaign groups'
    )
    op.create_index('idx_groups_candidate_id', 'groups', ['candidate_id'])
    op.create_index('idx_groups_candidate_name', 'groups', ['candidate_id', 'name'], unique=True)

    # Create leaders table
    op.create_table(
        'leaders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('cedula', sa.String(length=20), nullable=False, comment='National ID number'),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('email', sa.String(length=150), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('neighborhood', sa.String(length=100), nullable=True),
        sa.Column('municipality', sa.String(length=100), nullable=True),
        sa.Column('birth_date', sa.Date(), nullable=True),
        sa.Column('gender', sa.String(length=10), nullable=True),
        sa.Column('meta', sa.Integer(), server_default='0', nullable=False, comment='Voter goal'),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('is_verified', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('group_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("gender IS NULL OR gender IN ('M', 'F', 'Other')", name='leaders_gender_check'),
        sa.CheckConstraint('meta >= 0', name='leaders_meta_check'),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('cedula'),
        comment='Canvassing leaders'
    )
    op.create_index('idx_leaders_group_id', 'leaders', ['group_id'])
    op.create_index('idx_leaders_names', 'leaders', ['last_name', 'first_name'])

    # Create planillados table
    op.create_table(
        'planillados',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('cedula', sa.String(length=20), nullable=False, comment='National ID number'),
        sa.Column('first_name', sa.String(length=150), nullable=False, comment='Nombres'),
        sa.Column('last_name', sa.String(length=150), nullable=False, comment='Apellidos'),
        sa.Column('mobile', sa.String(length=20), nullable=True, comment='Celular'),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('neighborhood', sa.String(length=100), nullable=True, comment='Barrio where the voter lives'),
        sa.Column('id_issue_date', sa.Date(), nullable=True, comment='Fecha de expedicion of the cedula'),
        sa.Column('voting_department', sa.String(length=100), nullable=True),
        sa.Column('voting_municipality', sa.String(length=100), nullable=True),
        sa.Column('voting_address', sa.Text(), nullable=True),
        sa.Column('polling_station', sa.String(length=50), nullable=True, comment='Zona y puesto de votacion'),
        sa.Column('table_number', sa.String(length=20), nullable=True, comment='Mesa'),
        sa.Column('status', sa.String(length=20), server_default='pending', nullable=False),
        sa.Column('is_edil', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('is_updated', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('leader_id', sa.Integer(), nullable=True),
        sa.Column('group_id', sa.Integer(), nullable=True),
        sa.Column('birth_date', sa.Date(), nullable=True),
        sa.Column('gender', sa.String(length=10), nullable=True),
        sa.Column('notes', sa.String(length=500), nullable=True),
        sa.Column('pending_leader_cedula', sa.String(length=20), nullable=True,
                  comment='Leader cedula waiting for the leader to be registered'),
        *_timestamps(),
        sa.CheckConstraint("status IN ('verified', 'pending')", name='planillados_status_check'),
        sa.CheckConstraint("gender IS NULL OR gender IN ('M', 'F', 'Other')", name='planillados_gender_check'),
        sa.ForeignKeyConstraint(['leader_id'], ['leaders.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('cedula'),
        comment='Canvassed voter records (planillados)'
    )
    op.create_index('idx_planillados_leader_id', 'planillados', ['leader_id'])
    op.create_index('idx_planillados_group_id', 'planillados', ['group_id'])
    op.create_index('idx_planillados_neighborhood', 'planillados', ['neighborhood'])
    op.create_index('idx_planillados_pending_leader', 'planillados', ['pending_leader_cedula'])


def downgrade() -> None:
    op.drop_index('idx_planillados_pending_leader', table_name='planillados')
    op.drop_index('idx_planillados_neighborhood', table_name='planillados')
    op.drop_index('idx_planillados_group_id', table_name='planillados')
    op.drop_index('idx_planillados_leader_id', table_name='planillados')
    op.drop_table('planillados')

    op.drop_index('idx_leaders_names', table_name='leaders')
    op.drop_index('idx_leaders_group_id', table_name='leaders')
    op.drop_table('leaders')

    op.drop_index('idx_groups_candidate_name', table_name='groups')
    op.drop_index('idx_groups_candidate_id', table_name='groups')
    op.drop_table('groups')

    op.drop_index('idx_candidates_name', table_name='candidates')
    op.drop_table('candidates')

    op.drop_index('idx_locations_type', table_name='locations')
    op.drop_index('idx_locations_parent_id', table_name='locations')
    op.drop_table('locations')

    op.drop_table('users')
