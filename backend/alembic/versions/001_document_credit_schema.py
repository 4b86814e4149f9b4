"""document catalog, permissions, credit ledger and usage tables

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None

permission_scope = sa.Enum("USER", "SCHOOL", name="permissionscope")
transaction_type = sa.Enum("PURCHASE", "USAGE", "REFUND", "BONUS", name="transactiontype")
transaction_status = sa.Enum("PENDING", "COMPLETED", "FAILED", "CANCELLED", name="transactionstatus")


def upgrade() -> None:
    op.create_table(
        "document_types",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("name_bn", sa.String(), nullable=True),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("description_bn", sa.Text(), nullable=True),
        sa.Column("credits_required", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_popular", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_used", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(op.f("ix_document_types_id"), "document_types", ["id"], unique=False)
    op.create_index(op.f("ix_document_types_slug"), "document_types", ["slug"], unique=True)
    op.create_index(op.f("ix_document_types_category"), "document_types", ["category"], unique=False)

    op.create_table(
        "document_permissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("scope_type", permission_scope, nullable=False),
        sa.Column("scope_id", sa.String(), nullable=False),
        sa.Column("document_type_id", sa.Integer(), sa.ForeignKey("document_types.id"), nullable=False),
        sa.Column("is_allowed", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("credits_per_use", sa.Integer(), nullable=True),
        sa.Column("granted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("granted_by", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("scope_type", "scope_id", "document_type_id", name="uq_document_permission_scope"),
    )
    op.create_index(op.f("ix_document_permissions_id"), "document_permissions", ["id"], unique=False)
    op.create_index(op.f("ix_document_permissions_scope_id"), "document_permissions", ["scope_id"], unique=False)
    op.create_index(
        op.f("ix_document_permissions_document_type_id"), "document_permissions", ["document_type_id"], unique=False
    )

    op.create_table(
        "credit_balances",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_type", sa.String(), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("current_credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("bonus_credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("used_credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("owner_type", "owner_id", name="uq_credit_balance_owner"),
        sa.CheckConstraint("current_credits >= 0", name="ck_credit_balance_current_nonneg"),
        sa.CheckConstraint("bonus_credits >= 0", name="ck_credit_balance_bonus_nonneg"),
        sa.CheckConstraint("used_credits >= 0", name="ck_credit_balance_used_nonneg"),
    )
    op.create_index(op.f("ix_credit_balances_id"), "credit_balances", ["id"], unique=False)
    op.create_index(op.f("ix_credit_balances_owner_id"), "credit_balances", ["owner_id"], unique=False)

    op.create_table(
        "credit_packages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("credits", sa.Integer(), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(), nullable=False, server_default="BDT"),
        sa.Column("variant_id", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(op.f("ix_credit_packages_id"), "credit_packages", ["id"], unique=False)

    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_type", sa.String(), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("type", transaction_type, nullable=False),
        sa.Column("credits", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=True),
        sa.Column("status", transaction_status, nullable=False),
        sa.Column("reference", sa.String(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("payment_method", sa.String(), nullable=True),
        sa.Column("package_id", sa.Integer(), sa.ForeignKey("credit_packages.id"), nullable=True),
        sa.Column("document_type_id", sa.Integer(), sa.ForeignKey("document_types.id"), nullable=True),
        sa.Column("related_transaction_id", sa.Integer(), sa.ForeignKey("credit_transactions.id"), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(op.f("ix_credit_transactions_id"), "credit_transactions", ["id"], unique=False)
    op.create_index(op.f("ix_credit_transactions_owner_id"), "credit_transactions", ["owner_id"], unique=False)
    op.create_index(op.f("ix_credit_transactions_reference"), "credit_transactions", ["reference"], unique=True)

    op.create_table(
        "generated_documents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_type_id", sa.Integer(), sa.ForeignKey("document_types.id"), nullable=False),
        sa.Column("school_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("credits_charged", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("transaction_id", sa.Integer(), sa.ForeignKey("credit_transactions.id"), nullable=True),
        sa.Column("document_data", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="generated"),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(op.f("ix_generated_documents_id"), "generated_documents", ["id"], unique=False)
    op.create_index(
        op.f("ix_generated_documents_document_type_id"), "generated_documents", ["document_type_id"], unique=False
    )
    op.create_index(op.f("ix_generated_documents_school_id"), "generated_documents", ["school_id"], unique=False)
    op.create_index(op.f("ix_generated_documents_user_id"), "generated_documents", ["user_id"], unique=False)
    op.create_index(op.f("ix_generated_documents_generated_at"), "generated_documents", ["generated_at"], unique=False)

    op.create_table(
        "document_stats",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_type_id", sa.Integer(), sa.ForeignKey("document_types.id"), nullable=False),
        sa.Column("school_id", sa.String(), nullable=False),
        sa.Column("total_generated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_generated", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("document_type_id", "school_id", name="uq_document_stats_type_school"),
    )
    op.create_index(op.f("ix_document_stats_id"), "document_stats", ["id"], unique=False)
    op.create_index(op.f("ix_document_stats_document_type_id"), "document_stats", ["document_type_id"], unique=False)
    op.create_index(op.f("ix_document_stats_school_id"), "document_stats", ["school_id"], unique=False)


def downgrade() -> None:
    op.drop_table("document_stats")
    op.drop_table("generated_documents")
    op.drop_table("credit_transactions")
    op.drop_table("credit_packages")
    op.drop_table("credit_balances")
    op.drop_table("document_permissions")
    op.drop_table("document_types")
    bind = op.get_bind()
    transaction_status.drop(bind, checkfirst=True)
    transaction_type.drop(bind, checkfirst=True)
    permission_scope.drop(bind, checkfirst=True)
