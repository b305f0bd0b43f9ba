"""
Product API Routes
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from gstbook.core.database import get_db
from gstbook.core.results import run_operation, raise_for_result
from gstbook.core.security import get_current_member
from gstbook.models import TeamMember
from gstbook.schemas import ProductCreate, ProductUpdate, ProductResponse, MessageResponse
from gstbook.services.product_service import ProductService

router = APIRouter(prefix="/products", tags=["Products"])


@router.get("", response_model=List[ProductResponse])
async def list_products(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return ProductService(db).get_by_team(member.team_id, include_inactive)


@router.post("", response_model=ProductResponse, status_code=201)
async def create_product(
    product_data: ProductCreate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    """Create a product; the GST classification follows its rate and exemption"""
    return raise_for_result(run_operation(db, lambda: ProductService(db).create(product_data, member.team_id)))


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return raise_for_result(run_operation(db, lambda: ProductService(db).get_or_404(product_id, member.team_id)))


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: int,
    product_data: ProductUpdate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    return raise_for_result(run_operation(
        db, lambda: ProductService(db).update(product_id, member.team_id, product_data)
    ))


@router.delete("/{product_id}", response_model=MessageResponse)
async def delete_product(
    product_id: int,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(get_current_member)
):
    raise_for_result(run_operation(db, lambda: ProductService(db).delete(product_id, member.team_id)))
    return {"message": "Product deactivated"}
