"""
CRM Service - Customers and Suppliers
"""
from typing import Optional, List
from sqlalchemy.orm import Session

from gstbook.core.errors import NotFound
from gstbook.models import Customer, Supplier, Invoice, SupplierBill
from gstbook.schemas import CustomerCreate, CustomerUpdate, SupplierCreate, SupplierUpdate
from gstbook.services.feature_service import FeatureService

WALK_IN_CUSTOMER_NAME = "Walk-in Customer"


class CustomerService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, customer_id: int, team_id: int) -> Optional[Customer]:
        return self.db.query(Customer).filter(
            Customer.id == customer_id,
            Customer.team_id == team_id
        ).first()

    def get_or_404(self, customer_id: int, team_id: int) -> Customer:
        customer = self.get_by_id(customer_id, team_id)
        if not customer:
            raise NotFound("Customer", customer_id)
        return customer

    def get_by_team(self, team_id: int, include_inactive: bool = False, search: str = None) -> List[Customer]:
        query = self.db.query(Customer).filter(Customer.team_id == team_id)
        if not include_inactive:
            query = query.filter(Customer.is_active == True)
        if search:
            query = query.filter(Customer.name.ilike(f"%{search}%"))
        return query.order_by(Customer.name).all()

    def create(self, customer_data: CustomerCreate, team_id: int) -> Customer:
        FeatureService(self.db).enforce_usage_limit(team_id, "customers")
        customer = Customer(team_id=team_id, **customer_data.model_dump())
        self.db.add(customer)
        self.db.flush()
        return customer

    def update(self, customer_id: int, team_id: int, customer_data: CustomerUpdate) -> Customer:
        customer = self.get_or_404(customer_id, team_id)
        for key, value in customer_data.model_dump(exclude_unset=True).items():
            setattr(customer, key, value)
        self.db.flush()
        return customer

    def delete(self, customer_id: int, team_id: int) -> None:
        customer = self.get_or_404(customer_id, team_id)
        has_invoices = self.db.query(Invoice.id).filter(Invoice.customer_id == customer_id).first()
        if has_invoices:
            # Keep history intact
            customer.is_active = False
        else:
            self.db.delete(customer)
        self.db.flush()

    def get_or_create_walk_in(self, team_id: int) -> Customer:
        customer = self.db.query(Customer).filter(
            Customer.team_id == team_id,
            Customer.name == WALK_IN_CUSTOMER_NAME
        ).first()
        if customer:
            return customer
        customer = Customer(team_id=team_id, name=WALK_IN_CUSTOMER_NAME, is_active=True)
        self.db.add(customer)
        self.db.flush()
        return customer


class SupplierService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, supplier_id: int, team_id: int) -> Optional[Supplier]:
        return self.db.query(Supplier).filter(
            Supplier.id == supplier_id,
            Supplier.team_id == team_id
        ).first()

    def get_or_404(self, supplier_id: int, team_id: int) -> Supplier:
        supplier = self.get_by_id(supplier_id, team_id)
        if not supplier:
            raise NotFound("Supplier", supplier_id)
        return supplier

    def get_by_team(self, team_id: int, include_inactive: bool = False) -> List[Supplier]:
        query = self.db.query(Supplier).filter(Supplier.team_id == team_id)
        if not include_inactive:
            query = query.filter(Supplier.is_active == True)
        return query.order_by(Supplier.name).all()

    def create(self, supplier_data: SupplierCreate, team_id: int) -> Supplier:
        supplier = Supplier(team_id=team_id, **supplier_data.model_dump())
        self.db.add(supplier)
        self.db.flush()
        return supplier

    def update(self, supplier_id: int, team_id: int, supplier_data: SupplierUpdate) -> Supplier:
        supplier = self.get_or_404(supplier_id, team_id)
        for key, value in supplier_data.model_dump(exclude_unset=True).items():
            setattr(supplier, key, value)
        self.db.flush()
        return supplier

    def delete(self, supplier_id: int, team_id: int) -> None:
        supplier = self.get_or_404(supplier_id, team_id)
        has_bills = self.db.query(SupplierBill.id).filter(SupplierBill.supplier_id == supplier_id).first()
        if has_bills:
            supplier.is_active = False
        else:
            self.db.delete(supplier)
        self.db.flush()
