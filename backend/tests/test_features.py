import pytest

from gstbook.core.errors import UsageLimitExceeded, ValidationError, NotFound
from gstbook.models import Plan, Feature, PlanFeature, TeamFeatureOverride
from gstbook.schemas import CustomerCreate
from gstbook.services.crm_service import CustomerService
from gstbook.services.feature_service import FeatureService


def make_plan(db, name, codes, **limits):
    plan = Plan(name=name, **limits)
    db.add(plan)
    db.flush()
    for code in codes:
        feature = db.query(Feature).filter(Feature.code == code).one()
        db.add(PlanFeature(plan_id=plan.id, feature_id=feature.id))
    db.commit()
    return plan


def test_unassigned_team_gets_default_plan_features(db, team):
    features = FeatureService(db).get_team_features(team.id)

    assert features == {"invoices", "cash_sales", "payments", "supplier_bills", "gst_reports", "data_export"}


def test_overrides_add_and_remove_plan_features(db, team):
    service = FeatureService(db)
    plan = make_plan(db, "Custom", ["invoices", "payments"])
    service.assign_plan(team.id, plan.id)
    service.set_override(team.id, "payments", enabled=False)
    service.set_override(team.id, "bank_qr", enabled=True)
    db.commit()

    assert service.get_team_features(team.id) == {"invoices", "bank_qr"}
    assert service.has_feature(team.id, "bank_qr")
    assert not service.has_feature(team.id, "payments")


def test_override_is_upserted(db, team):
    service = FeatureService(db)
    service.set_override(team.id, "credit_notes", enabled=True, reason="trial")
    service.set_override(team.id, "credit_notes", enabled=False, reason="trial ended")
    db.commit()

    rows = db.query(TeamFeatureOverride).filter(TeamFeatureOverride.team_id == team.id).all()
    assert len(rows) == 1
    assert rows[0].enabled is False
    assert rows[0].reason == "trial ended"
    assert not service.has_feature(team.id, "credit_notes")


def test_removing_override_falls_back_to_plan(db, team):
    service = FeatureService(db)
    service.set_override(team.id, "invoices", enabled=False)
    assert not service.has_feature(team.id, "invoices")

    service.remove_override(team.id, "invoices")
    assert service.has_feature(team.id, "invoices")

    with pytest.raises(NotFound):
        service.remove_override(team.id, "invoices")


def test_inactive_catalog_feature_is_not_granted_by_plan(db, team):
    feature = db.query(Feature).filter(Feature.code == "gst_reports").one()
    feature.is_active = False
    db.commit()

    assert not FeatureService(db).has_feature(team.id, "gst_reports")


def test_seed_catalog_is_idempotent(db):
    service = FeatureService(db)
    plans_before = db.query(Plan).count()
    links_before = db.query(PlanFeature).count()

    service.seed_catalog()
    db.commit()

    assert db.query(Plan).count() == plans_before
    assert db.query(PlanFeature).count() == links_before
    professional = db.query(Plan).filter(Plan.name == "Professional").one()
    assert FeatureService(db).get_plan_features(professional.id) == {f.code for f in db.query(Feature).all()}


def test_team_without_plan_is_unlimited(db, team):
    usage = FeatureService(db).check_usage_limit(team.id, "invoices")

    assert usage == {"allowed": True, "current": 0, "limit": None}


def test_usage_limit_blocks_creation_at_the_cap(db, team):
    plan = make_plan(db, "Tiny", ["invoices"], max_customers=2)
    FeatureService(db).assign_plan(team.id, plan.id)
    customers = CustomerService(db)
    customers.create(CustomerCreate(name="One"), team.id)
    customers.create(CustomerCreate(name="Two"), team.id)
    db.commit()

    usage = FeatureService(db).check_usage_limit(team.id, "customers")
    assert usage == {"allowed": False, "current": 2, "limit": 2}
    with pytest.raises(UsageLimitExceeded):
        customers.create(CustomerCreate(name="Three"), team.id)


def test_null_limit_is_unlimited(db, team):
    plan = make_plan(db, "Open", ["invoices"])
    FeatureService(db).assign_plan(team.id, plan.id)

    assert FeatureService(db).check_usage_limit(team.id, "products")["limit"] is None


def test_unknown_usage_resource(db, team):
    with pytest.raises(ValidationError):
        FeatureService(db).check_usage_limit(team.id, "widgets")


def test_assigning_unknown_plan(db, team):
    with pytest.raises(NotFound):
        FeatureService(db).assign_plan(team.id, 9999)
