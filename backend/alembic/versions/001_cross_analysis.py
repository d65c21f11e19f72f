"""Cross-framework analysis: catalog, assessment and qualitative tables plus
the engine's own cross-reference, overlap-cache, link and saved-query tables.

Revision ID: 001_cross_analysis
Revises:
Create Date: 2026-10-19

Creates: compliance_frameworks, compliance_controls,
         trustworthy_ai_requirements, requirement_control_mappings,
         control_assessments, z_inspection_reports, qualitative_findings,
         control_cross_references, framework_pair_versions, framework_overlap_cache,
         z_inspection_control_links, applied_weight_adjustments,
         saved_analysis_queries

Seeds the seven EU Trustworthy-AI requirements.
"""
from alembic import op
import sqlalchemy as sa

revision = "001_cross_analysis"
down_revision = None
branch_labels = None
depends_on = None


REQUIREMENTS = [
    ("human_agency_oversight", "Human Agency and Oversight", "Human Oversight",
     "AI systems should support human autonomy and decision-making.", 1),
    ("technical_robustness_safety", "Technical Robustness and Safety", "Robustness & Safety",
     "AI systems should reliably behave as intended while minimizing unintentional and unexpected harm.", 2),
    ("privacy_data_governance", "Privacy and Data Governance", "Privacy & Data",
     "Privacy and data protection must be guaranteed throughout the system's entire lifecycle.", 3),
    ("transparency", "Transparency", "Transparency",
     "The data, system, and AI business models should be transparent.", 4),
    ("diversity_fairness_nondiscrimination", "Diversity, Non-discrimination and Fairness", "Fairness & Diversity",
     "Unfair bias must be avoided; AI systems should be accessible to all.", 5),
    ("societal_environmental_wellbeing", "Societal and Environmental Well-being", "Societal Wellbeing",
     "AI systems should benefit all human beings, including future generations.", 6),
    ("accountability", "Accountability", "Accountability",
     "Mechanisms should ensure responsibility and accountability for AI systems and their outcomes.", 7),
]


def _enum(name: str, *values: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False, length=30)


def upgrade() -> None:
    # ── 1. Control catalog ────────────────────────────────────────
    op.create_table(
        "compliance_frameworks",
        sa.Column("id", sa.String(100), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("version", sa.String(50)),
        sa.Column("description", sa.Text),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "compliance_controls",
        sa.Column("id", sa.String(100), primary_key=True),
        sa.Column("framework_id", sa.String(100),
                  sa.ForeignKey("compliance_frameworks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("ref_id", sa.String(50)),
        sa.Column("category", sa.String(100)),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_control_framework_active", "compliance_controls", ["framework_id", "is_active"])
    op.create_index("ix_control_category", "compliance_controls", ["category"])

    requirements = op.create_table(
        "trustworthy_ai_requirements",
        sa.Column("id", sa.String(100), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("short_name", sa.String(100)),
        sa.Column("description", sa.Text),
        sa.Column("display_order", sa.Integer, nullable=False, server_default="0"),
    )

    op.create_table(
        "requirement_control_mappings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("requirement_id", sa.String(100),
                  sa.ForeignKey("trustworthy_ai_requirements.id", ondelete="CASCADE"), nullable=False),
        sa.Column("control_id", sa.String(100),
                  sa.ForeignKey("compliance_controls.id", ondelete="CASCADE"), nullable=False),
        sa.Column("mapping_strength", sa.Float, nullable=False, server_default="0.5"),
        sa.UniqueConstraint("requirement_id", "control_id", name="uq_rcm_req_control"),
    )

    # ── 2. Assessments & qualitative reviews ──────────────────────
    op.create_table(
        "control_assessments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("control_id", sa.String(100),
                  sa.ForeignKey("compliance_controls.id", ondelete="CASCADE"), nullable=False),
        sa.Column("score", sa.Float, nullable=False),
        sa.Column("assessor", sa.String(200)),
        sa.Column("notes", sa.Text),
        sa.Column("assessed_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_ca_control_assessed", "control_assessments", ["control_id", "assessed_at"])

    op.create_table(
        "z_inspection_reports",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("assessment_id", sa.String(100), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_z_inspection_reports_assessment_id", "z_inspection_reports", ["assessment_id"])

    op.create_table(
        "qualitative_findings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("assessment_id", sa.String(100), nullable=False),
        sa.Column("requirement_id", sa.String(100),
                  sa.ForeignKey("trustworthy_ai_requirements.id", ondelete="SET NULL")),
        sa.Column("category", sa.String(100)),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("finding_type", _enum(
            "finding_type_enum",
            "strength", "weakness", "opportunity", "threat", "recommendation", "observation",
        ), nullable=False),
        sa.Column("severity", sa.String(20)),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_qf_assessment", "qualitative_findings", ["assessment_id"])

    # ── 3. Cross-references & overlap cache ───────────────────────
    op.create_table(
        "control_cross_references",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("source_control_id", sa.String(100),
                  sa.ForeignKey("compliance_controls.id", ondelete="CASCADE"), nullable=False),
        sa.Column("target_control_id", sa.String(100),
                  sa.ForeignKey("compliance_controls.id", ondelete="CASCADE"), nullable=False),
        sa.Column("source_framework_id", sa.String(100),
                  sa.ForeignKey("compliance_frameworks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("target_framework_id", sa.String(100),
                  sa.ForeignKey("compliance_frameworks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("pair_key", sa.String(210), nullable=False),
        sa.Column("relationship_type", _enum(
            "relationship_type_enum",
            "equivalent", "partial", "related", "supersedes", "complementary",
        ), nullable=False),
        sa.Column("mapping_confidence", sa.Float, nullable=False, server_default="0.8"),
        sa.Column("mapped_by", _enum("mapping_source_enum", "system", "manual", "ai"),
                  nullable=False, server_default="system"),
        sa.Column("rationale", sa.Text),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime),
        sa.UniqueConstraint("pair_key", name="uq_ccr_pair"),
    )
    op.create_index("ix_ccr_source", "control_cross_references", ["source_control_id"])
    op.create_index("ix_ccr_target", "control_cross_references", ["target_control_id"])
    op.create_index("ix_ccr_frameworks", "control_cross_references",
                    ["source_framework_id", "target_framework_id"])

    op.create_table(
        "framework_pair_versions",
        sa.Column("pair_key", sa.String(210), primary_key=True),
        sa.Column("generation", sa.Integer, nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "framework_overlap_cache",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("framework1_id", sa.String(100),
                  sa.ForeignKey("compliance_frameworks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("framework1_name", sa.String(255), nullable=False),
        sa.Column("framework2_id", sa.String(100),
                  sa.ForeignKey("compliance_frameworks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("framework2_name", sa.String(255), nullable=False),
        sa.Column("total_mappings", sa.Integer, nullable=False, server_default="0"),
        sa.Column("equivalent_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("partial_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("related_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("overlap_percentage", sa.Float, nullable=False, server_default="0"),
        sa.Column("generation", sa.Integer, nullable=False, server_default="0"),
        sa.Column("calculated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("framework1_id", "framework2_id", name="uq_overlap_pair"),
    )

    # ── 4. Finding → control links ────────────────────────────────
    op.create_table(
        "z_inspection_control_links",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("finding_id", sa.Integer,
                  sa.ForeignKey("qualitative_findings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("control_id", sa.String(100),
                  sa.ForeignKey("compliance_controls.id", ondelete="CASCADE"), nullable=False),
        sa.Column("framework_id", sa.String(100),
                  sa.ForeignKey("compliance_frameworks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("link_type", _enum("link_type_enum", "direct", "indirect", "recommended"), nullable=False),
        sa.Column("weight_adjustment", sa.Float, nullable=False, server_default="0"),
        sa.Column("similarity", sa.Float),
        sa.Column("rationale", sa.Text),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("finding_id", "control_id", name="uq_zlink_finding_control"),
    )
    op.create_index("ix_zlink_control", "z_inspection_control_links", ["control_id"])

    op.create_table(
        "applied_weight_adjustments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("report_id", sa.Integer,
                  sa.ForeignKey("z_inspection_reports.id", ondelete="CASCADE"), nullable=False),
        sa.Column("link_id", sa.Integer,
                  sa.ForeignKey("z_inspection_control_links.id", ondelete="CASCADE"), nullable=False),
        sa.Column("weight_adjustment", sa.Float, nullable=False),
        sa.Column("assessments_updated", sa.Integer, nullable=False, server_default="0"),
        sa.Column("applied_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_awa_report_link", "applied_weight_adjustments", ["report_id", "link_id"])

    # ── 5. Saved analysis queries ─────────────────────────────────
    op.create_table(
        "saved_analysis_queries",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("query_type", _enum(
            "analysis_query_type_enum",
            "cross_framework", "gap_analysis", "requirement_coverage", "z_inspection",
        ), nullable=False),
        sa.Column("parameters", sa.JSON, nullable=False),
        sa.Column("is_scheduled", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("schedule_frequency", sa.String(100)),
        sa.Column("last_run", sa.DateTime),
        sa.Column("saved_results", sa.JSON),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_saq_tenant", "saved_analysis_queries", ["tenant_id"])

    # ── 6. Seed: Trustworthy-AI requirements ──────────────────────
    op.bulk_insert(requirements, [
        {"id": rid, "name": name, "short_name": short, "description": desc, "display_order": order}
        for rid, name, short, desc, order in REQUIREMENTS
    ])


def downgrade() -> None:
    op.drop_table("saved_analysis_queries")
    op.drop_table("applied_weight_adjustments")
    op.drop_table("z_inspection_control_links")
    op.drop_table("framework_overlap_cache")
    op.drop_table("framework_pair_versions")
    op.drop_table("control_cross_references")
    op.drop_table("qualitative_findings")
    op.drop_table("z_inspection_reports")
    op.drop_table("control_assessments")
    op.drop_table("requirement_control_mappings")
    op.drop_table("trustworthy_ai_requirements")
    op.drop_table("compliance_controls")
    op.drop_table("compliance_frameworks")
