"""live session access core: sessions, schedules, purchases, attendance, recordings

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

revision = '20261018_0001'
down_revision = None
branch_labels = None
depends_on = None

OPEN_STATUSES = sa.text("status IN ('pending', 'active')")


def _id():
    return sa.Column('id', sa.Uuid(as_uuid=True), primary_key=True)


def _ts(name, nullable=False):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        'users',
        _id(),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('role', sa.Enum('learner', 'instructor', 'admin', name='user_role_enum'), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False),
        _ts('created_at'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'courses',
        _id(),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('price_paise', sa.Integer, nullable=False),
        sa.Column('is_deleted', sa.Boolean, nullable=False),
        _ts('created_at'),
    )

    op.create_table(
        'course_enrollments',
        _id(),
        sa.Column('learner_id', sa.Uuid(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('course_id', sa.Uuid(as_uuid=True), sa.ForeignKey('courses.id', ondelete='CASCADE'), nullable=False),
        sa.Column(
            'status',
            sa.Enum('active', 'suspended', 'completed', 'cancelled', name='course_enrollment_status_enum'),
            nullable=False,
        ),
        _ts('enrolled_at'),
        sa.UniqueConstraint('learner_id', 'course_id', name='uq_course_enrollment_pair'),
    )
    op.create_index('ix_course_enrollments_learner_id', 'course_enrollments', ['learner_id'])
    op.create_index('ix_course_enrollments_course_id', 'course_enrollments', ['course_id'])
    op.create_index('ix_course_enrollments_status', 'course_enrollments', ['status'])

    op.create_table(
        'plans',
        _id(),
        sa.Column('name', sa.String(50), nullable=False, unique=True),
        sa.Column('slug', sa.String(50), nullable=False, unique=True),
        sa.Column('price_monthly_paise', sa.Integer, nullable=False),
        sa.Column('grants_live_access', sa.Boolean, nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False),
        _ts('created_at'),
    )

    op.create_table(
        'subscriptions',
        _id(),
        sa.Column('user_id', sa.Uuid(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('plan_id', sa.Uuid(as_uuid=True), sa.ForeignKey('plans.id'), nullable=False),
        sa.Column(
            'status',
            sa.Enum(
                'pending', 'trialing', 'active', 'past_due', 'cancelled', 'expired',
                name='subscription_status_enum',
            ),
            nullable=False,
        ),
        sa.Column('razorpay_subscription_id', sa.String(255), nullable=True),
        _ts('current_period_start', nullable=True),
        _ts('current_period_end', nullable=True),
        _ts('cancelled_at', nullable=True),
        _ts('created_at'),
        _ts('updated_at'),
    )
    op.create_index('ix_subscriptions_user_id', 'subscriptions', ['user_id'])
    op.create_index('ix_subscriptions_status', 'subscriptions', ['status'])
    op.create_index(
        'ix_subscriptions_razorpay_subscription_id', 'subscriptions', ['razorpay_subscription_id'], unique=True
    )

    op.create_table(
        'payments',
        _id(),
        sa.Column('user_id', sa.Uuid(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('purpose', sa.Enum('session', 'schedule', name='payment_purpose_enum'), nullable=False),
        sa.Column('amount_paise', sa.Integer, nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column(
            'status',
            sa.Enum('pending', 'captured', 'failed', 'refunded', name='payment_status_enum'),
            nullable=False,
        ),
        sa.Column('provider_reference', sa.String(255), nullable=True),
        sa.Column('failure_reason', sa.Text, nullable=True),
        sa.Column('webhook_payload', sa.JSON, nullable=True),
        _ts('created_at'),
        _ts('completed_at', nullable=True),
    )
    op.create_index('ix_payments_user_id', 'payments', ['user_id'])
    op.create_index('ix_payments_provider_reference', 'payments', ['provider_reference'], unique=True)

    op.create_table(
        'live_session_schedules',
        _id(),
        sa.Column('course_id', sa.Uuid(as_uuid=True), sa.ForeignKey('courses.id', ondelete='SET NULL'), nullable=True),
        sa.Column('instructor_id', sa.Uuid(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('price_paise', sa.Integer, nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('enrolled_count', sa.Integer, nullable=False),
        sa.Column('total_revenue_paise', sa.Integer, nullable=False),
        sa.Column('max_students', sa.Integer, nullable=True),
        sa.Column(
            'status',
            sa.Enum('draft', 'published', 'active', 'completed', 'cancelled', name='schedule_status_enum'),
            nullable=False,
        ),
        sa.Column('is_published', sa.Boolean, nullable=False),
        sa.Column('is_deleted', sa.Boolean, nullable=False),
        _ts('created_at'),
    )
    op.create_index('ix_live_session_schedules_course_id', 'live_session_schedules', ['course_id'])
    op.create_index('ix_live_session_schedules_instructor_id', 'live_session_schedules', ['instructor_id'])
    op.create_index('ix_live_session_schedules_status', 'live_session_schedules', ['status'])

    op.create_table(
        'live_sessions',
        _id(),
        sa.Column('course_id', sa.Uuid(as_uuid=True), sa.ForeignKey('courses.id', ondelete='CASCADE'), nullable=False),
        sa.Column(
            'schedule_id', sa.Uuid(as_uuid=True),
            sa.ForeignKey('live_session_schedules.id', ondelete='SET NULL'), nullable=True,
        ),
        sa.Column('schedule_order', sa.Integer, nullable=False),
        sa.Column('instructor_id', sa.Uuid(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('meeting_url', sa.String(512), nullable=True),
        _ts('scheduled_start'),
        _ts('scheduled_end'),
        sa.Column('duration_minutes', sa.Integer, nullable=False),
        sa.Column(
            'status',
            sa.Enum('scheduled', 'live', 'completed', 'cancelled', name='live_session_status_enum'),
            nullable=False,
        ),
        sa.Column(
            'pricing_type',
            sa.Enum('free', 'paid', 'subscription_only', name='live_session_pricing_enum'),
            nullable=False,
        ),
        sa.Column('price_paise', sa.Integer, nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('is_free_for_all', sa.Boolean, nullable=False),
        sa.Column('max_participants', sa.Integer, nullable=True),
        sa.Column('purchase_count', sa.Integer, nullable=False),
        sa.Column('total_revenue_paise', sa.Integer, nullable=False),
        sa.Column('is_deleted', sa.Boolean, nullable=False),
        _ts('created_at'),
        _ts('updated_at'),
    )
    op.create_index('ix_live_sessions_course_id', 'live_sessions', ['course_id'])
    op.create_index('ix_live_sessions_schedule_id', 'live_sessions', ['schedule_id'])
    op.create_index('ix_live_sessions_instructor_id', 'live_sessions', ['instructor_id'])
    op.create_index('ix_live_sessions_scheduled_start', 'live_sessions', ['scheduled_start'])
    op.create_index('ix_live_sessions_status', 'live_sessions', ['status'])

    op.create_table(
        'live_session_seats',
        sa.Column(
            'session_id', sa.Uuid(as_uuid=True),
            sa.ForeignKey('live_sessions.id', ondelete='CASCADE'), primary_key=True,
        ),
        sa.Column('present_count', sa.Integer, nullable=False),
        _ts('updated_at'),
        sa.CheckConstraint('present_count >= 0', name='ck_seats_present_non_negative'),
    )

    op.create_table(
        'live_session_attendances',
        _id(),
        sa.Column(
            'session_id', sa.Uuid(as_uuid=True),
            sa.ForeignKey('live_sessions.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('learner_id', sa.Uuid(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('is_present', sa.Boolean, nullable=False),
        _ts('first_joined_at', nullable=True),
        _ts('joined_at', nullable=True),
        _ts('left_at', nullable=True),
        sa.Column('accumulated_minutes', sa.Integer, nullable=False),
        sa.Column('duration_minutes', sa.Integer, nullable=False),
        sa.Column(
            'attendance_status',
            sa.Enum('present', 'late', 'absent', 'excused', name='attendance_status_enum'),
            nullable=True,
        ),
        sa.Column('late_minutes', sa.Integer, nullable=False),
        sa.Column('early_leave_minutes', sa.Integer, nullable=False),
        sa.Column('score', sa.Float, nullable=False),
        sa.Column('excuse_reason', sa.Text, nullable=True),
        sa.Column('excuse_approved', sa.Boolean, nullable=False),
        sa.Column('marked_by_instructor', sa.Boolean, nullable=False),
        sa.Column('device_type', sa.String(255), nullable=True),
        sa.Column('ip_address', sa.String(64), nullable=True),
        _ts('created_at'),
        _ts('updated_at'),
        sa.UniqueConstraint('session_id', 'learner_id', name='uq_attendance_session_learner'),
    )
    op.create_index('ix_live_session_attendances_session_id', 'live_session_attendances', ['session_id'])
    op.create_index('ix_live_session_attendances_learner_id', 'live_session_attendances', ['learner_id'])

    op.create_table(
        'live_session_recordings',
        _id(),
        sa.Column(
            'session_id', sa.Uuid(as_uuid=True),
            sa.ForeignKey('live_sessions.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('video_url', sa.String(1024), nullable=False),
        sa.Column('duration_minutes', sa.Integer, nullable=False),
        sa.Column('is_published', sa.Boolean, nullable=False),
        sa.Column('access_requires_purchase', sa.Boolean, nullable=False),
        sa.Column('view_count', sa.Integer, nullable=False),
        _ts('recorded_at'),
    )
    op.create_index('ix_live_session_recordings_session_id', 'live_session_recordings', ['session_id'])

    op.create_table(
        'session_purchases',
        _id(),
        sa.Column('learner_id', sa.Uuid(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column(
            'session_id', sa.Uuid(as_uuid=True),
            sa.ForeignKey('live_sessions.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('payment_id', sa.Uuid(as_uuid=True), sa.ForeignKey('payments.id', ondelete='SET NULL'), nullable=True),
        sa.Column('amount_paise', sa.Integer, nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column(
            'status',
            sa.Enum('pending', 'active', 'refunded', 'failed', name='session_purchase_status_enum'),
            nullable=False,
        ),
        _ts('purchased_at'),
        _ts('activated_at', nullable=True),
        _ts('refunded_at', nullable=True),
    )
    op.create_index('ix_session_purchases_learner_id', 'session_purchases', ['learner_id'])
    op.create_index('ix_session_purchases_session_id', 'session_purchases', ['session_id'])
    op.create_index('ix_session_purchases_status', 'session_purchases', ['status'])
    op.create_index(
        'uq_session_purchase_open', 'session_purchases', ['learner_id', 'session_id'],
        unique=True, postgresql_where=OPEN_STATUSES, sqlite_where=OPEN_STATUSES,
    )

    op.create_table(
        'schedule_enrollments',
        _id(),
        sa.Column('learner_id', sa.Uuid(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column(
            'schedule_id', sa.Uuid(as_uuid=True),
            sa.ForeignKey('live_session_schedules.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('payment_id', sa.Uuid(as_uuid=True), sa.ForeignKey('payments.id', ondelete='SET NULL'), nullable=True),
        sa.Column('amount_paise', sa.Integer, nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column(
            'status',
            sa.Enum(
                'pending', 'active', 'cancelled', 'expired', 'failed',
                name='schedule_enrollment_status_enum',
            ),
            nullable=False,
        ),
        _ts('enrolled_at'),
        _ts('activated_at', nullable=True),
        _ts('cancelled_at', nullable=True),
    )
    op.create_index('ix_schedule_enrollments_learner_id', 'schedule_enrollments', ['learner_id'])
    op.create_index('ix_schedule_enrollments_schedule_id', 'schedule_enrollments', ['schedule_id'])
    op.create_index('ix_schedule_enrollments_status', 'schedule_enrollments', ['status'])
    op.create_index(
        'uq_schedule_enrollment_open', 'schedule_enrollments', ['learner_id', 'schedule_id'],
        unique=True, postgresql_where=OPEN_STATUSES, sqlite_where=OPEN_STATUSES,
    )

    op.create_table(
        'notifications',
        _id(),
        sa.Column('user_id', sa.Uuid(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column(
            'notification_type',
            sa.Enum(
                'purchase_completed', 'session_sale', 'purchase_refunded', 'enrollment_cancelled',
                name='notification_type_enum',
            ),
            nullable=False,
        ),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('body', sa.Text, nullable=True),
        sa.Column('action_url', sa.String(512), nullable=True),
        sa.Column('extra_data', sa.JSON, nullable=True),
        sa.Column('is_read', sa.Boolean, nullable=False),
        _ts('read_at', nullable=True),
        sa.Column('email_sent', sa.Boolean, nullable=False),
        _ts('email_sent_at', nullable=True),
        sa.Column('email_error', sa.Text, nullable=True),
        _ts('created_at'),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_notification_type', 'notifications', ['notification_type'])
    op.create_index('ix_notifications_is_read', 'notifications', ['is_read'])
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'])


def downgrade() -> None:
    for table in (
        'notifications',
        'schedule_enrollments',
        'session_purchases',
        'live_session_recordings',
        'live_session_attendances',
        'live_session_seats',
        'live_sessions',
        'live_session_schedules',
        'payments',
        'subscriptions',
        'plans',
        'course_enrollments',
        'courses',
        'users',
    ):
        op.drop_table(table)

    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        for enum_name in (
            'notification_type_enum',
            'schedule_enrollment_status_enum',
            'session_purchase_status_enum',
            'attendance_status_enum',
            'live_session_pricing_enum',
            'live_session_status_enum',
            'schedule_status_enum',
            'payment_status_enum',
            'payment_purpose_enum',
            'subscription_status_enum',
            'course_enrollment_status_enum',
            'user_role_enum',
        ):
            sa.Enum(name=enum_name).drop(bind, checkfirst=True)
