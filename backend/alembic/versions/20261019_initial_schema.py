from alembic import op
import sqlalchemy as sa


revision = "20261019_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=120), nullable=False),
        sa.Column("username", sa.String(length=60), nullable=False),
        sa.Column("bio", sa.String(length=500), nullable=True),
        sa.Column("avatar_url", sa.String(length=512), nullable=True),
        sa.Column("notifications_enabled", sa.Boolean(), nullable=True),
        sa.Column("is_email_verified", sa.Boolean(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    op.create_table(
        "wishlists",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=2000), nullable=True),
        sa.Column("theme", sa.String(length=20), nullable=True),
        sa.Column("visibility", sa.String(length=20), nullable=True),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("event_date", sa.Date(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_wishlists_owner_id", "wishlists", ["owner_id"])
    op.create_index("ix_wishlists_slug", "wishlists", ["slug"], unique=True)

    op.create_table(
        "items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("wishlist_id", sa.Integer(), sa.ForeignKey("wishlists.id", ondelete="SET NULL"), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("note", sa.String(length=2000), nullable=True),
        sa.Column("url", sa.String(length=2048), nullable=True),
        sa.Column("image_url", sa.String(length=2048), nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=True),
        sa.Column("shipping_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=True),
        sa.Column("priority", sa.String(length=10), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=True),
        sa.Column("size", sa.String(length=60), nullable=True),
        sa.Column("color", sa.String(length=60), nullable=True),
        sa.Column("model", sa.String(length=120), nullable=True),
        sa.Column("promo_code", sa.String(length=60), nullable=True),
        sa.Column("original_wishlist_name", sa.String(length=255), nullable=True),
        sa.Column("original_owner_id", sa.Integer(), nullable=True),
        sa.Column("original_theme", sa.String(length=20), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("price IS NULL OR price >= 0", name="ck_items_price_non_negative"),
        sa.CheckConstraint("quantity >= 1", name="ck_items_quantity_positive"),
    )
    op.create_index("ix_items_wishlist_id", "items", ["wishlist_id"])
    op.create_index("ix_items_status", "items", ["status"])

    op.create_table(
        "claims",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("items.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=True),
        sa.Column("paid_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("reserved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("purchased_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    # one claim per item
    op.create_index("ix_claims_item_id", "claims", ["item_id"], unique=True)
    op.create_index("ix_claims_user_id", "claims", ["user_id"])

    op.create_table(
        "wishlist_members",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("wishlist_id", sa.Integer(), sa.ForeignKey("wishlists.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=True),
        sa.Column("approved", sa.Boolean(), nullable=True),
        sa.Column("message", sa.String(length=500), nullable=True),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("wishlist_id", "user_id", name="uq_wishlist_members_user"),
        sa.UniqueConstraint("wishlist_id", "email", name="uq_wishlist_members_email"),
    )
    op.create_index("ix_wishlist_members_wishlist_id", "wishlist_members", ["wishlist_id"])
    op.create_index("ix_wishlist_members_user_id", "wishlist_members", ["user_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        sa.Column("type", sa.String(length=40), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_read", "notifications", ["read"])

    op.create_table(
        "budget_goals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("limit_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "type", "year", name="uq_budget_goals_user_type_year"),
        sa.CheckConstraint("limit_amount IS NULL OR limit_amount >= 0", name="ck_budget_goals_limit_non_negative"),
    )
    op.create_index("ix_budget_goals_user_id", "budget_goals", ["user_id"])

    op.create_table(
        "external_recipients",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("profile_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_external_recipients_user_id", "external_recipients", ["user_id"])

    op.create_table(
        "external_gifts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        sa.Column(
            "recipient_id",
            sa.Integer(),
            sa.ForeignKey("external_recipients.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("description", sa.String(length=255), nullable=True),
        sa.Column("paid_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("purchase_date", sa.Date(), nullable=False),
        sa.Column("theme", sa.String(length=20), nullable=True),
        sa.Column("notes", sa.String(length=1000), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("paid_amount >= 0", name="ck_external_gifts_paid_non_negative"),
    )
    op.create_index("ix_external_gifts_user_id", "external_gifts", ["user_id"])
    op.create_index("ix_external_gifts_recipient_id", "external_gifts", ["recipient_id"])


def downgrade() -> None:
    for table in (
        "external_gifts",
        "external_recipients",
        "budget_goals",
        "notifications",
        "wishlist_members",
        "claims",
        "items",
        "wishlists",
        "users",
    ):
        op.drop_table(table)
