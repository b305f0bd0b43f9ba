"""
CRM API Routes - Customers and Suppliers
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional

from gstbook.core.database import get_db
from gstbook.core.results import run_operation, raise_for_result
from gstbook.core.security import get_current_member
from gstbook.models import TeamMember
from gstbook.schemas import (
    CustomerCreate, CustomerUpdate, CustomerResponse,
    SupplierCreate, SupplierUpdate, SupplierResponse, MessageResponse
)
from gstbook.services.crm_service import CustomerService, SupplierService

router = APIRouter(tags=["CRM"])


# ==================== CUSTOMERS ====================

@router.get("/customers", response_model=List[CustomerResponse])
async def list_customers(
    include_inactive: bool = False,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return CustomerService(db).get_by_team(member.team_id, include_inactive, search)


@router.post("/customers", response_model=CustomerResponse, status_code=201)
async def create_customer(
    customer_data: CustomerCreate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return raise_for_result(run_operation(db, lambda: CustomerService(db).create(customer_data, member.team_id)))


@router.get("/customers/{customer_id}", response_model=CustomerResponse)
async def get_customer(
    customer_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return raise_for_result(run_operation(db, lambda: CustomerService(db).get_or_404(customer_id, member.team_id)))


@router.put("/customers/{customer_id}", response_model=CustomerResponse)
async def update_customer(
    customer_id: int,
    customer_data: CustomerUpdate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return raise_for_result(run_operation(
        db, lambda: CustomerService(db).update(customer_id, member.team_id, customer_data)
    ))


@router.delete("/customers/{customer_id}", response_model=MessageResponse)
async def delete_customer(
    customer_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    """Delete a customer; customers with invoices are deactivated instead"""
    raise_for_result(run_operation(db, lambda: CustomerService(db).delete(customer_id, member.team_id)))
    return {"message": "Customer deleted"}


# ==================== SUPPLIERS ====================

@router.get("/suppliers", response_model=List[SupplierResponse])
async def list_suppliers(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return SupplierService(db).get_by_team(member.team_id, include_inactive)


@router.post("/suppliers", response_model=SupplierResponse, status_code=201)
async def create_supplier(
    supplier_data: SupplierCreate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return raise_for_result(run_operation(db, lambda: SupplierService(db).create(supplier_data, member.team_id)))


@router.get("/suppliers/{supplier_id}", response_model=SupplierResponse)
async def get_supplier(
    supplier_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return raise_for_result(run_operation(db, lambda: SupplierService(db).get_or_404(supplier_id, member.team_id)))


@router.put("/suppliers/{supplier_id}", response_model=SupplierResponse)
async def update_supplier(
    supplier_id: int,
    supplier_data: SupplierUpdate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return raise_for_result(run_operation(
        db, lambda: SupplierService(db).update(supplier_id, member.team_id, supplier_data)
    ))


@router.delete("/suppliers/{supplier_id}", response_model=MessageResponse)
async def delete_supplier(
    supplier_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    raise_for_result(run_operation(db, lambda: SupplierService(db).delete(supplier_id, member.team_id)))
    return {"message": "Supplier deleted"}
