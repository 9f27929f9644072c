from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision = '001_create_properties_and_adminlogs'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'properties',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('owner_id', sa.Integer, nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('is_visible', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('approved_at', sa.DateTime(timezone=True)),
        sa.Column('reviewed_at', sa.DateTime(timezone=True)),
        sa.Column('reviewed_by', sa.Integer),
        sa.Column('rejection_reason', sa.Text),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=False, server_default=''),
        sa.Column('price', sa.Float, nullable=False),
        sa.Column('price_unit', sa.String(20), nullable=False, server_default='night'),
        sa.Column('location', sa.String(255), nullable=False),
        sa.Column('bedrooms', sa.Integer, nullable=False, server_default='1'),
        sa.Column('bathrooms', sa.Integer, nullable=False, server_default='1'),
        sa.Column('capacity', sa.Integer, nullable=False, server_default='1'),
        sa.Column('amenities', JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column('images', JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column('featured', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('rating', sa.Float, nullable=False, server_default='0'),
        sa.Column('review_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        # Flags are a cache of status and must agree with it
        sa.CheckConstraint("status IN ('pending', 'approved', 'rejected')", name='ck_properties_status'),
        sa.CheckConstraint(
            "is_active = (status = 'approved') AND is_visible = (status = 'approved')",
            name='ck_properties_visibility_matches_status',
        ),
    )
    op.create_index('idx_properties_owner_created', 'properties', ['owner_id', 'created_at'])
    op.create_index('idx_properties_status_created', 'properties', ['status', 'created_at'])

    op.create_table(
        'AdminLogs',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('admin_id', sa.Integer, nullable=False),
        sa.Column('action', sa.String(255), nullable=False),
        sa.Column('entity_id', sa.Integer),
        sa.Column('details', JSONB),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now())
    )
    op.create_index('idx_adminlogs_admin_id', 'AdminLogs', ['admin_id'])
    op.create_index('idx_adminlogs_action', 'AdminLogs', ['action'])


def downgrade():
    op.drop_table('AdminLogs')
    op.drop_table('properties')
