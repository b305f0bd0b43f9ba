"""
Feature Service - plan entitlements, per-team overrides and usage limits
"""
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, Set
from sqlalchemy import func
from sqlalchemy.orm import Session
import logging

from gstbook.core.errors import NotFound, ValidationError, UsageLimitExceeded
from gstbook.models import (
    Plan, Feature, PlanFeature, TeamFeatureOverride, Team, Invoice, Product, Customer
)

logger = logging.getLogger(__name__)


FEATURE_CATALOG = [
    # Sales
    {"code": "invoices", "name": "Tax Invoices", "module": "sales", "description": "Create and manage tax invoices", "sort_order": 1},
    {"code": "cash_sales", "name": "Cash Sales", "module": "sales", "description": "Quick point-of-sale invoicing", "sort_order": 2},
    {"code": "quotations", "name": "Quotations", "module": "sales", "description": "Create quotations and convert to invoices", "sort_order": 3},
    {"code": "credit_notes", "name": "Credit Notes", "module": "sales", "description": "Issue credit notes and refunds", "sort_order": 4},
    {"code": "recurring_invoices", "name": "Recurring Invoices", "module": "sales", "description": "Auto-generate invoices on schedule", "sort_order": 5},
    # Purchases
    {"code": "supplier_bills", "name": "Supplier Bills", "module": "purchases", "description": "Record and manage supplier bills", "sort_order": 1},
    {"code": "debit_notes", "name": "Debit Notes", "module": "purchases", "description": "Issue debit notes to suppliers", "sort_order": 2},
    # Payments
    {"code": "payments", "name": "Payments", "module": "payments", "description": "Record and track payments", "sort_order": 1},
    {"code": "bank_qr", "name": "Bank QR Payments", "module": "payments", "description": "Collect payments through bank QR codes", "sort_order": 2},
    # Compliance
    {"code": "gst_returns", "name": "GST Returns", "module": "compliance", "description": "Prepare and file GST returns", "sort_order": 1},
    {"code": "gst_reports", "name": "GST Reports", "module": "compliance", "description": "Output/Input GST and compliance reports", "sort_order": 2},
    # Communication
    {"code": "email_invoices", "name": "Email Invoices", "module": "communication", "description": "Send invoices via email", "sort_order": 1},
    {"code": "payment_reminders", "name": "Payment Reminders", "module": "communication", "description": "Automated overdue payment reminders", "sort_order": 2},
    # Advanced
    {"code": "multi_currency", "name": "Multi-Currency", "module": "advanced", "description": "Invoice in BTN, INR, USD", "sort_order": 1},
    {"code": "api_access", "name": "API Access", "module": "advanced", "description": "REST API for integrations", "sort_order": 2},
    {"code": "data_export", "name": "Data Export", "module": "advanced", "description": "Export data in CSV/Excel format", "sort_order": 3},
]

ALL_FEATURES = "all"

DEFAULT_PLANS = [
    {
        "name": "Free",
        "description": "For small businesses getting started",
        "is_default": True,
        "sort_order": 1,
        "max_users": 2,
        "max_invoices_per_month": 10,
        "max_products": 50,
        "max_customers": 20,
        "features": ["invoices", "cash_sales", "payments", "supplier_bills", "gst_reports", "data_export"],
    },
    {
        "name": "Starter",
        "description": "For growing businesses",
        "sort_order": 2,
        "max_users": 5,
        "max_invoices_per_month": 100,
        "max_products": 500,
        "max_customers": 200,
        "monthly_price": Decimal("499"),
        "yearly_price": Decimal("4990"),
        "features": [
            "invoices", "cash_sales", "quotations", "credit_notes", "payments", "supplier_bills",
            "debit_notes", "gst_returns", "gst_reports", "email_invoices", "data_export",
        ],
    },
    {
        "name": "Professional",
        "description": "For established businesses needing full features",
        "sort_order": 3,
        "max_users": 15,
        "monthly_price": Decimal("999"),
        "yearly_price": Decimal("9990"),
        "features": ALL_FEATURES,
    },
]

USAGE_RESOURCES = ("invoices", "products", "customers")


class FeatureService:
    def __init__(self, db: Session):
        self.db = db

    def _get_team(self, team_id: int) -> Team:
        team = self.db.query(Team).filter(Team.id == team_id).first()
        if not team:
            raise NotFound("Team", team_id)
        return team

    def get_default_plan(self) -> Optional[Plan]:
        return self.db.query(Plan).filter(Plan.is_default == True, Plan.is_active == True).first()

    def get_effective_plan(self, team: Team) -> Optional[Plan]:
        """The assigned plan, or the default plan for unassigned teams"""
        if team.plan_id:
            plan = self.db.query(Plan).filter(Plan.id == team.plan_id).first()
            if plan:
                return plan
        return self.get_default_plan()

    def get_plan_features(self, plan_id: int) -> Set[str]:
        rows = self.db.query(Feature.code).join(
            PlanFeature, PlanFeature.feature_id == Feature.id
        ).filter(
            PlanFeature.plan_id == plan_id,
            Feature.is_active == True
        ).all()
        return {code for (code,) in rows}

    def get_team_features(self, team_id: int) -> Set[str]:
        """
        Resolve the enabled feature codes for a team.

        Plan features (assigned plan, falling back to the default plan) with
        overrides applied on top: enabled overrides add a code, disabled
        overrides remove it.
        """
        team = self._get_team(team_id)
        plan = self.get_effective_plan(team)
        enabled = self.get_plan_features(plan.id) if plan else set()

        overrides = self.db.query(TeamFeatureOverride).filter(
            TeamFeatureOverride.team_id == team_id
        ).all()
        for override in overrides:
            if override.enabled:
                enabled.add(override.feature_code)
            else:
                enabled.discard(override.feature_code)
        return enabled

    def has_feature(self, team_id: int, feature_code: str) -> bool:
        return feature_code in self.get_team_features(team_id)

    def set_override(self, team_id: int, feature_code: str, enabled: bool,
                     reason: Optional[str] = None, user_id: Optional[int] = None) -> TeamFeatureOverride:
        """Create or replace the single override row for (team, feature)"""
        self._get_team(team_id)
        override = self.db.query(TeamFeatureOverride).filter(
            TeamFeatureOverride.team_id == team_id,
            TeamFeatureOverride.feature_code == feature_code
        ).first()
        if override is None:
            override = TeamFeatureOverride(team_id=team_id, feature_code=feature_code)
            self.db.add(override)
        override.enabled = enabled
        override.reason = reason
        override.created_by = user_id
        self.db.flush()
        logger.info(f"Feature override {feature_code}={enabled} for team {team_id}")
        return override

    def remove_override(self, team_id: int, feature_code: str) -> None:
        override = self.db.query(TeamFeatureOverride).filter(
            TeamFeatureOverride.team_id == team_id,
            TeamFeatureOverride.feature_code == feature_code
        ).first()
        if not override:
            raise NotFound("Feature override", feature_code)
        self.db.delete(override)
        self.db.flush()

    def assign_plan(self, team_id: int, plan_id: Optional[int]) -> Team:
        team = self._get_team(team_id)
        if plan_id is not None:
            plan = self.db.query(Plan).filter(Plan.id == plan_id, Plan.is_active == True).first()
            if not plan:
                raise NotFound("Plan", plan_id)
        team.plan_id = plan_id
        self.db.flush()
        return team

    def list_plans(self):
        return self.db.query(Plan).filter(Plan.is_active == True).order_by(Plan.sort_order).all()

    # ---------- usage limits ----------

    def _count_usage(self, team_id: int, resource: str) -> int:
        if resource == "invoices":
            start_of_month = datetime.combine(date.today().replace(day=1), datetime.min.time())
            return self.db.query(func.count(Invoice.id)).filter(
                Invoice.team_id == team_id,
                Invoice.created_at >= start_of_month
            ).scalar() or 0
        if resource == "products":
            return self.db.query(func.count(Product.id)).filter(Product.team_id == team_id).scalar() or 0
        return self.db.query(func.count(Customer.id)).filter(Customer.team_id == team_id).scalar() or 0

    def check_usage_limit(self, team_id: int, resource: str) -> dict:
        """
        Compare current usage against the assigned plan's limit.

        Teams without an assigned plan, and NULL limits, are unlimited.
        """
        if resource not in USAGE_RESOURCES:
            raise ValidationError(f"Unknown usage resource: {resource}")

        team = self._get_team(team_id)
        plan = self.db.query(Plan).filter(Plan.id == team.plan_id).first() if team.plan_id else None
        if plan is None:
            return {"allowed": True, "current": 0, "limit": None}

        limit = {
            "invoices": plan.max_invoices_per_month,
            "products": plan.max_products,
            "customers": plan.max_customers,
        }[resource]
        if limit is None:
            return {"allowed": True, "current": 0, "limit": None}

        current = self._count_usage(team_id, resource)
        return {"allowed": current < limit, "current": current, "limit": limit}

    def enforce_usage_limit(self, team_id: int, resource: str) -> None:
        usage = self.check_usage_limit(team_id, resource)
        if not usage["allowed"]:
            raise UsageLimitExceeded(resource, usage["limit"])

    # ---------- seeding ----------

    def seed_catalog(self) -> dict:
        """Create the feature catalogue and default plans if missing"""
        features = {}
        for data in FEATURE_CATALOG:
            feature = self.db.query(Feature).filter(Feature.code == data["code"]).first()
            if feature is None:
                feature = Feature(**data)
                self.db.add(feature)
            features[data["code"]] = feature
        self.db.flush()

        for data in DEFAULT_PLANS:
            plan_data = {k: v for k, v in data.items() if k != "features"}
            plan = self.db.query(Plan).filter(Plan.name == plan_data["name"]).first()
            if plan is None:
                plan = Plan(**plan_data)
                self.db.add(plan)
                self.db.flush()

            codes = list(features) if data["features"] == ALL_FEATURES else data["features"]
            existing = {pf.feature_id for pf in plan.plan_features}
            for code in codes:
                feature = features.get(code)
                if feature is not None and feature.id not in existing:
                    self.db.add(PlanFeature(plan_id=plan.id, feature_id=feature.id))
        self.db.flush()
        return {"features": len(features), "plans": len(DEFAULT_PLANS)}
